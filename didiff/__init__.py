"""didiff: binary diff and patch for Docker images.

A consumer holding an old image and a small patch file can rebuild a newer
image without pulling its full payload:

  - ``create`` saves both images, runs bsdiff over the two archives and
    writes the patch
  - ``apply`` saves the old image, patches its archive, loads the result
    and confirms the target reference now resolves
"""

__version__ = "0.2.0"
__description__ = "Binary diff and patch for Docker images"

from didiff.core.orchestrator import PatchOrchestrator
from didiff.config import DidiffSettings
from didiff.errors import DidiffError

__all__ = ["PatchOrchestrator", "DidiffSettings", "DidiffError", "__version__"]
