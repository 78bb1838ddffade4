"""sketchbuild - recipe-driven build system for Arduino-style sketches."""

__version__ = "0.1.0"
