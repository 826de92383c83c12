#!/usr/bin/env python3
# ABOUTME: Command-line entry point for the texturing pipeline
# ABOUTME: Runs the pipeline from a source checkout without installing it

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent / 'src'))

from pipeline.cli import main


if __name__ == '__main__':
    main()
