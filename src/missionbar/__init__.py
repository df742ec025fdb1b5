"""Process and installed-application monitor for macOS."""
