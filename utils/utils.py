"""
Utilities for the confidential voting client: logging setup and plain-text
reports.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence


def setup_logging(log_level: str = "INFO", log_file: Optional[Path] = None,
                  log_dir: str = "logs"):
    """Configure the root logger once: a log file plus the console"""
    if log_file is None:
        log_file = Path(log_dir) / \
            f"veil_voting_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"

    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Clear existing handlers to avoid duplicates
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized. Log file: {log_file}")

    return logger


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format"""
    if seconds < 60:
        return f"{int(seconds)}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        return f"{minutes}m {int(seconds % 60)}s"
    elif seconds < 86400:
        hours = int(seconds // 3600)
        return f"{hours}h {int((seconds % 3600) // 60)}m"
    else:
        days = int(seconds // 86400)
        return f"{days}d {int((seconds % 86400) // 3600)}h"


def format_results(proposal, results) -> str:
    """Plain-text result table for a revealed proposal"""
    lines = []
    lines.append("=" * 60)
    lines.append(f"PROPOSAL #{proposal.id}: {proposal.title}")
    lines.append("=" * 60)

    counts: Sequence[int] = results.counts
    width = max([len(option) for option in proposal.options] + [6])
    for option, count, pct in zip(proposal.options, counts, results.percentages):
        bar = '#' * int(round(pct / 5))
        lines.append(f"  {option:<{width}}  {count:>6} votes  {pct:5.1f}%  {bar}")

    lines.append("-" * 60)
    lines.append(f"  Total Votes: {results.total}")
    if results.winners:
        lines.append(f"  Leading: {', '.join(results.winners)}")
    lines.append("=" * 60)
    return "\n".join(lines)
