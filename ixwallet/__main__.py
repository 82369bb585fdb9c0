"""
Allow running IXWALLET as a module: python -m ixwallet
"""

from ixwallet.app import run

if __name__ == "__main__":
    run()
