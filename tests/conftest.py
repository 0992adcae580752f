import os
import sys

# Make the root-level CLI module importable without an install
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
