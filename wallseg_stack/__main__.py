"""
Wall segmentation stack entry point.

Run with: python -m wallseg_stack [--input-dir DIR | --mock N]
"""

from .executor import main

if __name__ == "__main__":
    main()
