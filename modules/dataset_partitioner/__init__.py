"""
Dataset Partitioner Module
==========================

Responsibility:
- Classifies samples as signal or background from their label.
- Splits each sample into contiguous train/test slices by a fixed fraction.
- Attaches the sample weight to every record.
- Merges same-class slices into four role files (train/test x signal/background).
"""

from .dataset_partitioner import (
    DatasetPartitioner,
    PartitionFiles,
    ClassPair,
    Sample,
    is_signal_label,
    split_counts,
)

__all__ = ['DatasetPartitioner', 'PartitionFiles', 'ClassPair', 'Sample', 'is_signal_label', 'split_counts']
