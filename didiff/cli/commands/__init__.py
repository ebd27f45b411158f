"""One module per ``didiff`` subcommand."""
