"""
BDT Trainer Module
==================

Responsibility:
- Translates method descriptors into gradient-boosted tree settings.
- Fits on the training partitions with per-record sample weights.
- Scores the held-out partitions with the weighted ROC AUC.
"""

from .bdt_trainer import BDTTrainer

__all__ = ['BDTTrainer']
