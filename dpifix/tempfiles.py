# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Temporary output files.

Copyright 2025 DNAi inc.
"""

import tempfile
from pathlib import Path
from typing import Optional, Union


def create_temp_file(
    extension: str,
    directory: Optional[Union[str, Path]] = None,
    prefix: str = 'dpifix_'
) -> Path:
    """
    Create an empty, uniquely named file that outlives this call.

    Args:
        extension: File extension without the dot (e.g. 'jpg')
        directory: Directory to create the file in (default: system temp directory)
        prefix: File name prefix

    Returns:
        Path to the new file
    """
    if directory is not None:
        Path(directory).mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        delete=False,
        suffix=f".{extension.lstrip('.')}",
        prefix=prefix,
        dir=directory,
    ) as tmp:
        return Path(tmp.name)
