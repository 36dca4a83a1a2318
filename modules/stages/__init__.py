"""
Stages Module
=============

Responsibility:
- Concrete pipeline stages run by the PipelineDriver, in pipeline order:
  Slimmer, Preselection, BDTTrain, BDTEval, Plotter.
"""

from .slimmer_stage import SlimmerStage
from .preselection_stage import PreselectionStage
from .bdt_train_stage import BDTTrainStage
from .bdt_eval_stage import BDTEvalStage
from .plot_stage import PlotStage

__all__ = [
    'SlimmerStage',
    'PreselectionStage',
    'BDTTrainStage',
    'BDTEvalStage',
    'PlotStage',
]
