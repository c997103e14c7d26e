"""
Data management package for the forecasting engine.
Handles price series repair, quality scoring and market context features.
"""

from .data_quality import DataQualityPipeline, is_quality_acceptable
from .market_features import MarketFeatureEngineer, feature_matrix

__all__ = ['DataQualityPipeline', 'is_quality_acceptable', 'MarketFeatureEngineer', 'feature_matrix']
