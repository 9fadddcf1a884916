"""Click command modules, registered by ``macsetup.main``."""
