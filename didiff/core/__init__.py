"""Pipeline core: resolution, staging, delta computation, orchestration."""
