# Copyright 2025 DNAi inc.

# Dual-licensed under the DNAi Free License v1.1 and the
# DNAi Commercial License v1.1.
# See the LICENSE files in the project root for details.

"""
Configuration for density resets.

Copyright 2025 DNAi inc.
"""

from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass
class ResetConfig:
    """
    Options for writing density-adjusted images.

    Attributes:
        output_dir: Directory for the output files (None = system temp directory)
        optimize: Enable encoder optimizations (optimized Huffman tables for
            JPEG, maximum zlib effort for PNG)
        keep_jpeg_quality: Reuse the source quantization tables and chroma
            subsampling when re-encoding JPEG files
        prefix: Prefix of the output file names
    """
    output_dir: Optional[Path] = None
    optimize: bool = True
    keep_jpeg_quality: bool = True
    prefix: str = 'dpifix_'

    def __post_init__(self):
        if self.output_dir is not None and not isinstance(self.output_dir, Path):
            self.output_dir = Path(self.output_dir)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResetConfig':
        """
        Create a configuration from a mapping, ignoring unknown keys.

        Args:
            data: Mapping of option names to values

        Returns:
            ResetConfig instance
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        if self.output_dir is not None:
            result['output_dir'] = str(self.output_dir)
        return result
