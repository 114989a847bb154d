"""
Console helpers shared by the engine and the pipeline runner.
"""

import sys


class Tee:
    """Helper class to write to both console and file"""
    def __init__(self, *files):
        self.files = files

    def write(self, data):
        for f in self.files:
            f.write(data)
            f.flush()

    def flush(self):
        for f in self.files:
            f.flush()


def print_header(title: str, level: int = 1, verbose: bool = True):
    """Print formatted section header"""
    if not verbose:
        return
    if level == 1:
        print("\n" + "=" * 80)
        print(f"{title.upper()}")
        print("=" * 80)
    elif level == 2:
        print(f"\n[{title}]")
        print("-" * 80)
    else:
        print(f"\n--- {title} ---")


def echo(message: str, verbose: bool = True):
    """Print an indented progress line when verbose."""
    if verbose:
        print(f"    {message}")
        sys.stdout.flush()
