#!/usr/bin/env python3
import sys
from pathlib import Path

# Modules live flat under src/
src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(src_path))

if __name__ == "__main__":
    from run_scenario import main
    main()
