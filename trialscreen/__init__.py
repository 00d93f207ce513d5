"""Clinical-trial pre-screening orchestration backend."""

__version__ = "0.1.0"
