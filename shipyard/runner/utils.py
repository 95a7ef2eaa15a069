import logging
from pathlib import Path

from shipyard.const import MANIFEST_PLACEHOLDER, RUN_COUNTER_FILE

logger = logging.getLogger(__name__)


def render_manifest(path: Path, build_identifier: str) -> int:
    """Replace the image tag placeholder in ``path``, rewriting the file.

    Returns the number of replacements. A manifest without the placeholder is
    left as is and only produces a warning.
    """
    text = path.read_text()
    count = text.count(MANIFEST_PLACEHOLDER)
    if not count:
        logger.warning(f'{path} does not contain {MANIFEST_PLACEHOLDER}')
        return 0
    path.write_text(text.replace(MANIFEST_PLACEHOLDER, build_identifier))
    return count


def describe_dir(path: Path) -> str:
    if not path.is_dir():
        return f'{path} does not exist'
    lines = [str(path)]
    for entry in sorted(path.iterdir()):
        if entry.is_dir():
            lines.append(f'  {entry.name}/')
        else:
            lines.append(f'  {entry.name} {entry.stat().st_size}')
    return '\n'.join(lines)


def allocate_run_number(data_dir: Path) -> int:
    counter = data_dir / RUN_COUNTER_FILE
    last = int(counter.read_text().strip() or 0) if counter.is_file() else 0
    counter.write_text(str(last + 1))
    return last + 1


def reserve_run_number(data_dir: Path, run_number: int) -> int:
    """Record an externally chosen run number so the counter never hands it out."""
    counter = data_dir / RUN_COUNTER_FILE
    last = int(counter.read_text().strip() or 0) if counter.is_file() else 0
    if run_number > last:
        counter.write_text(str(run_number))
    return run_number
