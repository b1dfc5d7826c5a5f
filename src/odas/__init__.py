"""ODAS - Omnidirectional Digital Asset Steward

メトリクスをしきい値と比較して介入を記録する評価コア。
"""

__version__ = "0.1.0"
