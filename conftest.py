import os
import sys

# Make the top-level packages (cli, extensions, orchestrator, pipeline, tools) importable in tests.
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__))))
