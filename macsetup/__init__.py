"""macsetup — snapshot a macOS machine setup and replay it elsewhere."""

__version__ = "0.1.0"
