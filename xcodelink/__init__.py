# -*- coding: utf-8 -*-
"""xcodelink: passa un progetto Xcode da xcframework precompilato ai sorgenti."""

__version__ = "1.0.0"
