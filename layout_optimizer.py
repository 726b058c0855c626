"""
Keyboard Layout Optimizer for generating, improving and comparing keyboard layouts.

(c) Arno Klein (arnoklein.info), MIT License (see LICENSE)

Searches for 30-key layouts (three rows of ten keys) that score well on a
language's character, bigram and trigram statistics, and keeps a per-language
collection of named layouts to rank and compare.

Features:
- Generate layouts from scratch with simulated annealing (best 10 kept)
- Improve a saved layout while keeping pinned keys in place
- Rank and compare saved layouts metric by metric
- Build language data from any text file
- Interactive session that keeps generated layouts between commands

Metrics (weights set in config.yaml; negative = penalty, positive = bonus):
- effort, same_finger_bigram, lateral_stretch, same_finger_skipgram
- alternation, inward_roll, outward_roll, one_hand_run, redirect

# Generate layouts and show the best 10
python layout_optimizer.py generate 1000

# Reproducible generation with progress bars
python layout_optimizer.py --seed 42 --progress generate 1000

# Improve a saved layout (pins from config.yaml, or --pin)
python layout_optimizer.py improve qwerty 200 --pin 0 --pin 9

# Rank and compare saved layouts
python layout_optimizer.py rank
python layout_optimizer.py compare qwerty dvorak

# Interactive session
python layout_optimizer.py repl
> generate 500
> layout 0
> save 0 mylayout
> quit

"""

import sys
from typing import List, Optional

from layout_engine.cli_utils import (
    OptimizerShell, create_cli_parser, handle_common_errors, read_config, resolve_config_path,
)
from layout_engine.logging_utils import setup_logging


@handle_common_errors
def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the layout optimizer."""
    parser = create_cli_parser()
    args = parser.parse_args(argv)

    config_path = resolve_config_path(args.config)
    config = read_config(config_path, args.seed)
    setup_logging(config, verbose=args.verbose)

    shell = OptimizerShell(
        config_path=config_path,
        config=config,
        language=args.language,
        seed=args.seed,
        progress=args.progress,
    )

    if args.command == 'repl':
        shell.repl()
    else:
        shell.execute(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
