import sys
from pathlib import Path

# Allow running the tests from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent.parent))
