#!/usr/bin/env python3
"""
CLI utilities for the layout optimizer.

Argument parsing for the command set shared by the one-shot command line and
the interactive REPL, the OptimizerShell that keeps one search session and
layout store alive between commands, and standardized error handling.

Commands (aliases in parentheses):
    generate (gen, g) COUNT         Generate layouts and keep the best 10
    improve (i, optimize) NAME N    Improve a saved layout, keeping pinned keys
    rank (r, sort)                  Rank saved layouts by score
    layout (l, analyze, a) NAME|NR  Show a saved or generated layout
    compare (c, cmp) NAME1 NAME2    Compare two saved layouts
    save (s) NR [NAME]              Save generated layout NR
    language (lang) [LANGUAGE]      Show or set the language
    languages (langs)               List available languages
    reload                          Re-read the configuration
    corpus LANGUAGE TEXT_FILE       Build language data from a text file
    metrics                         List metrics and their weights
"""

import argparse
import functools
import logging
import shlex
import sys
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TextIO, Tuple

import yaml

from layout_engine.config_loader import (
    ConfigLoader, config_pins, config_weights, load_config, merge_config, validate_config,
)
from layout_engine.corpus import Corpus, available_languages, save_corpus
from layout_engine.errors import LayoutEngineError, SearchCancelled
from layout_engine.geometry import standard_geometry
from layout_engine.metrics import available_metrics, finger_usage, hand_usage
from layout_engine.output_utils import (
    format_candidates, format_comparison, format_layout_details, format_metric_catalog,
    format_ranking, format_ranking_csv,
)
from layout_engine.search import SearchSession, new_session
from layout_engine.store import LayoutStore
from layout_engine.text_utils import validate_text_input

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"


#-----------------------------------------------------------------------------
# Configuration
#-----------------------------------------------------------------------------
def resolve_config_path(config_path: Optional[str]) -> Optional[str]:
    """
    Choose the configuration file to read.

    An explicit path is returned unchanged (and fails later if missing);
    otherwise config.yaml in the working directory is used when present.
    """
    if config_path is not None:
        return config_path
    if Path(DEFAULT_CONFIG_FILE).exists():
        return DEFAULT_CONFIG_FILE
    return None


def read_config(config_path: Optional[str], seed: Optional[int] = None) -> Dict[str, Any]:
    """
    Load and validate the configuration, logging any issues found.

    Args:
        config_path: YAML file, or None for built-in defaults
        seed: Optional search seed overriding the configured one

    Returns:
        Merged configuration dictionary
    """
    if config_path is None:
        config = load_config()
    else:
        config = ConfigLoader(config_path).load_config()

    if seed is not None:
        config = merge_config(config, {'search': {'seed': seed}})

    for issue in validate_config(config, available_metrics(), n_positions=len(standard_geometry())):
        logger.warning(f"Configuration: {issue}")

    return config


#-----------------------------------------------------------------------------
# Argument parsing
#-----------------------------------------------------------------------------
class CommandExit(Exception):
    """Raised by the REPL parser where argparse would exit the process."""

    def __init__(self, status: int = 0):
        self.status = status
        super().__init__(status)


class CommandParser(argparse.ArgumentParser):
    """Argument parser that raises instead of exiting, for use inside the REPL."""

    def exit(self, status=0, message=None):
        if message:
            print(message.rstrip(), file=sys.stderr)
        raise CommandExit(status)

    def error(self, message):
        raise ValueError(f"{message}\n{self.format_usage().strip()}")


def _add_commands(subparsers, interactive: bool) -> None:
    """Add the shared command set to a subparsers action."""
    p = subparsers.add_parser('generate', aliases=['gen', 'g'],
                              help="Generate a number of layouts and take the best 10")
    p.add_argument('count', metavar='COUNT', type=int, help="Number of search runs")
    p.set_defaults(command='generate')

    p = subparsers.add_parser('improve', aliases=['i', 'optimize'],
                              help="Improve a saved layout, keeping pinned keys in place")
    p.add_argument('name', metavar='LAYOUT_NAME', help="Saved layout to start from")
    p.add_argument('amount', metavar='AMOUNT', type=int, help="Number of search runs")
    p.add_argument('--pin', dest='pins', type=int, action='append',
                   help="Pinned key position (repeatable; default: pins from config)")
    p.set_defaults(command='improve')

    p = subparsers.add_parser('rank', aliases=['r', 'sort'],
                              help="Rank all saved layouts of the language by score")
    p.add_argument('--csv', action='store_true', help="Output per-metric values as CSV")
    p.set_defaults(command='rank')

    p = subparsers.add_parser('layout', aliases=['l', 'analyze', 'a'],
                              help="Show details of a saved layout or generated layout NR")
    p.add_argument('name_or_nr', metavar='LAYOUT_NAME_OR_NR')
    p.set_defaults(command='layout')

    p = subparsers.add_parser('compare', aliases=['c', 'cmp'], help="Compare 2 saved layouts")
    p.add_argument('layout1', metavar='LAYOUT_1')
    p.add_argument('layout2', metavar='LAYOUT_2')
    p.set_defaults(command='compare')

    p = subparsers.add_parser('save', aliases=['s'],
                              help="Save generated layout NR (0 = best), optionally by name")
    p.add_argument('nr', metavar='NR', type=int)
    p.add_argument('name', metavar='NAME', nargs='?')
    p.set_defaults(command='save')

    p = subparsers.add_parser('language', aliases=['lang'],
                              help="Show the language, or set it and load its corpus")
    p.add_argument('language', metavar='LANGUAGE', nargs='?')
    p.set_defaults(command='language')

    p = subparsers.add_parser('languages', aliases=['langs'], help="Show available languages")
    p.set_defaults(command='languages')

    p = subparsers.add_parser('reload',
                              help="Reload configuration and data for the current language; "
                                   "generated layouts are lost")
    p.set_defaults(command='reload')

    p = subparsers.add_parser('corpus', help="Build language data from a text file")
    p.add_argument('language', metavar='LANGUAGE')
    p.add_argument('text_file', metavar='TEXT_FILE')
    p.add_argument('--csv', action='store_true',
                   help="Write CSV frequency files instead of JSON")
    p.set_defaults(command='corpus')

    p = subparsers.add_parser('metrics', help="List metrics and their weights")
    p.set_defaults(command='metrics')

    if interactive:
        p = subparsers.add_parser('quit', aliases=['exit', 'q'], help="Quit the repl")
        p.set_defaults(command='quit')
    else:
        p = subparsers.add_parser('repl', help="Start an interactive session")
        p.set_defaults(command='repl')


def create_cli_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser for layout_optimizer.py."""
    parser = argparse.ArgumentParser(
        description="Keyboard layout optimizer - generate, improve, score and compare layouts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:

  # Generate 500 layouts for the default language and show the best 10
  python layout_optimizer.py generate 500

  # Rank saved layouts for a language
  python layout_optimizer.py --language english rank

  # Compare two saved layouts
  python layout_optimizer.py compare qwerty dvorak

  # Build language data from a text file
  python layout_optimizer.py corpus german texts/german.txt

  # Interactive session (generate, then save candidates by number)
  python layout_optimizer.py repl
        """
    )
    parser.add_argument('--config', dest='config',
                        help=f"Path to configuration file (default: {DEFAULT_CONFIG_FILE} if present)")
    parser.add_argument('--language', dest='language',
                        help="Language to use (default: defaults.language from config)")
    parser.add_argument('--seed', dest='seed', type=int,
                        help="Random seed for reproducible generation")
    parser.add_argument('--progress', action='store_true', help="Show search progress bars")
    parser.add_argument('--verbose', '-v', action='store_true', help="Print progress messages")

    subparsers = parser.add_subparsers(dest='command_alias', metavar='COMMAND')
    subparsers.required = True
    _add_commands(subparsers, interactive=False)
    return parser


def create_repl_parser() -> CommandParser:
    """Create the parser for one line of REPL input."""
    parser = CommandParser(prog='', add_help=True)
    subparsers = parser.add_subparsers(dest='command_alias', metavar='COMMAND')
    subparsers.required = True
    _add_commands(subparsers, interactive=True)
    return parser


#-----------------------------------------------------------------------------
# Shell
#-----------------------------------------------------------------------------
class OptimizerShell:
    """
    Command environment holding the current language, search session and
    layout store.

    Switching language or reloading builds the new session and store first
    and only then replaces the old ones.
    """

    def __init__(self,
                 config_path: Optional[str] = None,
                 config: Optional[Dict[str, Any]] = None,
                 language: Optional[str] = None,
                 seed: Optional[int] = None,
                 progress: bool = False,
                 out: Optional[TextIO] = None):
        """
        Initialize the shell and open the session for the starting language.

        Args:
            config_path: YAML configuration file (None = built-in defaults)
            config: Already loaded configuration (read from config_path if None)
            language: Starting language (None = defaults.language)
            seed: Search seed overriding the configured one
            progress: Show progress bars during searches
            out: Stream for command output (default: stdout)

        Raises:
            LanguageNotFound: If the starting language has no corpus data
        """
        self.config_path = config_path
        self.seed = seed
        self.progress = progress
        self.out = out or sys.stdout
        self.config = config if config is not None else read_config(config_path, seed)
        self.language = language or str(self.config['defaults']['language'])
        self.session, self.store = self._open(self.language, self.config)
        self._commands: Dict[str, Callable[[argparse.Namespace], None]] = {
            'generate': lambda a: self.generate(a.count),
            'improve': lambda a: self.improve(a.name, a.amount, a.pins),
            'rank': lambda a: self.rank(a.csv),
            'layout': lambda a: self.layout(a.name_or_nr),
            'compare': lambda a: self.compare(a.layout1, a.layout2),
            'save': lambda a: self.save(a.nr, a.name),
            'language': lambda a: self.set_language(a.language),
            'languages': lambda a: self.languages(),
            'reload': lambda a: self.reload(),
            'corpus': lambda a: self.build_corpus(a.language, a.text_file, a.csv),
            'metrics': lambda a: self.metrics(),
        }

    @staticmethod
    def _open(language: str, config: Dict[str, Any]) -> Tuple[SearchSession, LayoutStore]:
        session = new_session(language, config_weights(config), config)
        store = LayoutStore.for_session(session, config['paths']['layouts'])
        return session, store

    def _print(self, text: str = "") -> None:
        print(text, file=self.out)

    #-------------------------------------------------------------------------
    # Commands
    #-------------------------------------------------------------------------
    def generate(self, count: int) -> None:
        self._print(f"generating {count} layouts...")
        candidates = self.session.generate(count, progress=self.progress)
        self._print(format_candidates(candidates))

    def improve(self, name: str, amount: int, pins=None) -> None:
        layout = self.store.get(name)
        if pins is None:
            pins = config_pins(self.config)
        self._print(f"improving {name} with {amount} runs...")
        candidates = self.session.improve(amount, layout, pins, progress=self.progress)
        self._print(format_candidates(candidates))

    def rank(self, as_csv: bool = False) -> None:
        ranking = self.store.rank()
        if not ranking:
            return
        if not as_csv:
            self._print(format_ranking(ranking))
            return
        layouts = {name: self.store.get(name) for name, _ in ranking}
        breakdowns = {name: self.store.analyze(name) for name, _ in ranking}
        self._print(format_ranking_csv(ranking, layouts, breakdowns))

    def layout(self, name_or_nr: str) -> None:
        """Show a generated layout by number, or else a saved layout by name."""
        try:
            nr = int(name_or_nr)
        except ValueError:
            layout = self.store.get(name_or_nr)
        else:
            layout = self.session.nth(nr)

        geometry = self.session.geometry
        corpus = self.session.corpus
        self._print(format_layout_details(
            layout,
            geometry,
            self.session.evaluate(layout),
            hand=hand_usage(layout, corpus, geometry),
            fingers=finger_usage(layout, corpus, geometry),
        ))

    def compare(self, name1: str, name2: str) -> None:
        comparison = self.store.compare(name1, name2)
        layouts = (self.store.get(name1), self.store.get(name2))
        self._print(format_comparison(comparison, layouts, self.session.geometry))

    def save(self, nr: int, name: Optional[str] = None) -> None:
        layout = self.session.nth(nr)
        stored = self.store.save(layout, name)
        self._print(f"Saved {layout.encode()} as '{stored}'")

    def set_language(self, language: Optional[str]) -> None:
        if language is None:
            self._print(f"Current language: {self.language}")
            return
        session, store = self._open(language, self.config)
        self.language, self.session, self.store = language, session, store
        self._print(f"Set language to {language}")

    def languages(self) -> None:
        names = available_languages(self.config['paths']['language_data'])
        if not names:
            self._print("No languages available.")
        for name in names:
            self._print(name)

    def reload(self) -> None:
        config = read_config(self.config_path, self.seed)
        session, store = self._open(self.language, config)
        self.config, self.session, self.store = config, session, store
        self._print(f"Reloaded configuration and data for {self.language}")

    def build_corpus(self, language: str, text_file: str, as_csv: bool = False) -> None:
        text = Path(text_file).read_text(encoding='utf-8')
        issues = validate_text_input(text)
        if issues:
            raise ValueError(f"Cannot build corpus from {text_file}: {'; '.join(issues)}")

        corpus = Corpus.from_text(language, text)
        path = save_corpus(corpus, self.config['paths']['language_data'], as_csv=as_csv)
        self._print(f"Wrote {len(corpus.characters)} characters, {len(corpus.bigrams)} bigrams "
                    f"and {len(corpus.trigrams)} trigrams for {language} to {path}")

    def metrics(self) -> None:
        self._print(format_metric_catalog())
        self._print()
        self._print("Weights:")
        for name, weight in self.session.model.weights.items():
            self._print(f"  {name:<22} {weight:8.3f}")

    #-------------------------------------------------------------------------
    # Dispatch
    #-------------------------------------------------------------------------
    def execute(self, args: argparse.Namespace) -> bool:
        """
        Run one parsed command.

        Returns:
            True if the command asks to leave the REPL
        """
        if args.command == 'quit':
            return True
        handler = self._commands.get(args.command)
        if handler is None:
            raise ValueError(f"Command not available here: {args.command}")
        handler(args)
        return False

    def run_line(self, line: str, parser: Optional[CommandParser] = None) -> bool:
        """
        Parse and run one line of REPL input.

        Raises:
            ValueError: On invalid quoting or arguments
        """
        try:
            argv = shlex.split(line)
        except ValueError as e:
            raise ValueError(f"Invalid quoting: {e}")
        if not argv:
            return False
        parser = parser or create_repl_parser()
        return self.execute(parser.parse_args(argv))

    def repl(self, read: Callable[[str], str] = input) -> None:
        """
        Interactive loop: read a command per line until quit or end of input.

        Errors are reported and the loop continues; Ctrl-C cancels the
        running command without changing the session.
        """
        parser = create_repl_parser()
        while True:
            try:
                line = read("> ")
            except EOFError:
                self._print()
                break

            try:
                if self.run_line(line.strip(), parser):
                    self._print("Exiting analyzer...")
                    break
            except CommandExit:
                continue
            except (KeyboardInterrupt, SearchCancelled):
                print("\nOperation cancelled.", file=sys.stderr)
            except (LayoutEngineError, ValueError, OSError, yaml.YAMLError) as e:
                print(f"Error: {e}", file=sys.stderr)


#-----------------------------------------------------------------------------
# Error handling
#-----------------------------------------------------------------------------
def handle_common_errors(func):
    """
    Decorator to handle common CLI errors gracefully.

    Args:
        func: Function to wrap (typically main())

    Returns:
        Wrapped function returning an exit code on error
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except (KeyboardInterrupt, SearchCancelled):
            print("\nOperation cancelled by user.", file=sys.stderr)
            return 130
        except LayoutEngineError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except FileNotFoundError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1
        except yaml.YAMLError as e:
            print(f"Configuration error: {e}", file=sys.stderr)
            return 1
        except PermissionError as e:
            print(f"Permission error: {e}", file=sys.stderr)
            return 1
        except Exception as e:
            print(f"Unexpected error: {e}", file=sys.stderr)
            traceback.print_exc()
            return 1

    return wrapper
