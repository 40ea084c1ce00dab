#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Typeset a CV PDF from YAML data and a style file.
"""

# Standard Library
import sys

# local repo modules
import cv_typesetter.cli


if __name__ == "__main__":
	sys.exit(cv_typesetter.cli.main())
