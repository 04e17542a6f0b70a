"""
OpenLog SDK Command-Line Interface
==================================

This package provides the command-line tool for the OpenLog SDK:

- **olink**: File management on an OpenLog over a serial port

The tool is a Click-based CLI application with help for every command.
"""

__all__ = ["olink"]
