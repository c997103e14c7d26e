"""
Data quality pipeline for daily price series.
Detects calendar gaps, interpolates short ones, flags return outliers and
scores the repaired series.
"""

import logging
from datetime import timedelta
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from errors import DataError
from models import DataQualityResult, PriceGap, PricePoint

logger = logging.getLogger(__name__)

# Gaps up to MAX_INTERPOLATION_GAP + 1 calendar days are filled
MAX_INTERPOLATION_GAP = 3
MAX_INTERPOLATION_PERCENT = 0.10
MIN_QUALITY_SCORE = 60.0

DEFAULT_OUTLIER_WINDOW = 20
DEFAULT_OUTLIER_THRESHOLD = 3.0
# Trailing volatility floor so a flat window does not flag float noise
MIN_TRAILING_STD = 1e-8


class DataQualityPipeline:
    """Repairs and scores one symbol's raw daily series."""

    def __init__(self,
                 outlier_window: int = DEFAULT_OUTLIER_WINDOW,
                 outlier_threshold: float = DEFAULT_OUTLIER_THRESHOLD,
                 max_interpolation_percent: float = MAX_INTERPOLATION_PERCENT,
                 min_quality_score: float = MIN_QUALITY_SCORE,
                 business_days: bool = False):
        """
        Args:
            outlier_window: Number of trailing returns used for the z-score
            outlier_threshold: Multiple of the trailing std that marks an outlier
            max_interpolation_percent: Gate on the share of synthetic points
            min_quality_score: Gate on the quality score
            business_days: Measure gaps in weekdays so weekends are not gaps
        """
        self.outlier_window = outlier_window
        self.outlier_threshold = outlier_threshold
        self.max_interpolation_percent = max_interpolation_percent
        self.min_quality_score = min_quality_score
        self.business_days = business_days

    def process_data(self, points: List[PricePoint], symbol: Optional[str] = None) -> DataQualityResult:
        """
        Detect gaps, interpolate short ones, flag outliers and score the result.

        Args:
            points: Raw daily points, ascending by date
            symbol: Used to tag errors and log lines

        Returns:
            DataQualityResult with the repaired series
        """
        if not points:
            return DataQualityResult(
                data=[],
                gaps_detected=0,
                interpolated_count=0,
                interpolated_indices=[],
                interpolated_percent=0.0,
                outlier_count=0,
                outlier_indices=[],
                missing_days=0,
                quality_score=0.0,
            )

        self._check_ordering(points, symbol)

        gaps = self.detect_gaps(points, self.business_days)
        data, interpolated_indices = self.interpolate_gaps(points, gaps)
        outlier_indices = self.detect_outliers(data)

        interpolated_count = len(interpolated_indices)
        interpolated_percent = interpolated_count / len(data)
        quality_score = self.calculate_quality_score(data, interpolated_percent, gaps)

        result = DataQualityResult(
            data=data,
            gaps_detected=len(gaps),
            interpolated_count=interpolated_count,
            interpolated_indices=interpolated_indices,
            interpolated_percent=interpolated_percent,
            outlier_count=len(outlier_indices),
            outlier_indices=outlier_indices,
            missing_days=self.count_missing_days(points),
            quality_score=quality_score,
        )

        logger.info(
            f"Data quality{f' for {symbol}' if symbol else ''}: "
            f"score={quality_score:.1f}, gaps={len(gaps)}, "
            f"interpolated={interpolated_count} ({interpolated_percent*100:.1f}%), "
            f"outliers={len(outlier_indices)}"
        )
        return result

    def is_quality_acceptable(self, result: DataQualityResult) -> bool:
        """True when the series is complete enough to train or backtest on"""
        return is_quality_acceptable(result, self.max_interpolation_percent, self.min_quality_score)

    def require_acceptable(self, result: DataQualityResult, symbol: Optional[str] = None):
        """Raise a DataError describing why the series was rejected"""
        if self.is_quality_acceptable(result):
            return

        details = [f"quality {result.quality_score:.1f}/{self.min_quality_score:.0f} required"]
        if result.interpolated_count > 0:
            details.append(
                f"{result.interpolated_count} interpolated ({result.interpolated_percent*100:.1f}%)"
            )
        if result.outlier_count > 0:
            details.append(f"{result.outlier_count} outliers")
        if result.gaps_detected > 0:
            details.append(f"{result.gaps_detected} gaps")

        logger.warning(f"Rejecting series{f' for {symbol}' if symbol else ''}: {', '.join(details)}")
        raise DataError(f"Data quality below threshold: {', '.join(details)}", symbol=symbol)

    @staticmethod
    def validate_points(points: List[PricePoint]) -> Tuple[bool, List[str]]:
        """
        Check the provider invariants on a raw series.

        Returns:
            Tuple of (is_valid, list_of_issues)
        """
        issues = []
        for i, point in enumerate(points):
            if min(point.open, point.high, point.low, point.close, point.adj_close) <= 0:
                issues.append(f"Non-positive price at index {i} ({point.date})")
            if point.volume < 0:
                issues.append(f"Negative volume at index {i} ({point.date})")
            if i > 0:
                prev = points[i - 1].date
                if point.date == prev:
                    issues.append(f"Duplicate date {point.date} at index {i}")
                elif point.date < prev:
                    issues.append(f"Date {point.date} at index {i} precedes {prev}")
        return len(issues) == 0, issues

    def _check_ordering(self, points: List[PricePoint], symbol: Optional[str]):
        for i in range(1, len(points)):
            if points[i].date <= points[i - 1].date:
                raise DataError(
                    f"Series must be strictly ascending by date "
                    f"(index {i}: {points[i].date} after {points[i - 1].date})",
                    symbol=symbol,
                )

    @staticmethod
    def _day_delta(start, end, business_days: bool = False) -> int:
        if business_days:
            return int(np.busday_count(start, end))
        return (end - start).days

    @staticmethod
    def detect_gaps(points: List[PricePoint], business_days: bool = False) -> List[PriceGap]:
        """Every day-delta above one day is a gap (calendar days unless ``business_days``)"""
        gaps = []
        for i in range(1, len(points)):
            days = DataQualityPipeline._day_delta(points[i - 1].date, points[i].date, business_days)
            if days > 1:
                gaps.append(PriceGap(start_index=i - 1, end_index=i, gap_days=days))
        return gaps

    def interpolate_gaps(self, points: List[PricePoint],
                         gaps: List[PriceGap]) -> Tuple[List[PricePoint], List[int]]:
        """
        Fill interpolatable gaps with synthetic points.

        Returns:
            Tuple of (series with synthetic points, ascending output indices of
            the synthetic points)
        """
        fillable = {
            gap.end_index: gap for gap in gaps
            if gap.gap_days <= MAX_INTERPOLATION_GAP + 1
        }

        result: List[PricePoint] = []
        interpolated_indices: List[int] = []
        for i, point in enumerate(points):
            gap = fillable.get(i)
            if gap is not None:
                synthetic_points = self.linear_interpolate(
                    points[gap.start_index], point, gap.gap_days - 1, self.business_days
                )
                for synthetic in synthetic_points:
                    interpolated_indices.append(len(result))
                    result.append(synthetic)
            result.append(point)

        return result, interpolated_indices

    @staticmethod
    def linear_interpolate(start: PricePoint, end: PricePoint, n_points: int,
                           business_days: bool = False) -> List[PricePoint]:
        """Evenly spaced points strictly between ``start`` and ``end``"""
        total_days = DataQualityPipeline._day_delta(start.date, end.date, business_days)
        result = []
        for i in range(1, n_points + 1):
            ratio = i / (n_points + 1)

            def lerp(a: float, b: float) -> float:
                return a + ratio * (b - a)

            offset = round(ratio * total_days)
            if business_days:
                synthetic_date = np.busday_offset(start.date, offset, roll='forward').astype(object)
            else:
                synthetic_date = start.date + timedelta(days=offset)

            result.append(PricePoint(
                date=synthetic_date,
                open=lerp(start.open, end.open),
                high=lerp(start.high, end.high),
                low=lerp(start.low, end.low),
                close=lerp(start.close, end.close),
                adj_close=lerp(start.adj_close, end.adj_close),
                volume=int(round(lerp(start.volume, end.volume))),
            ))
        return result

    def detect_outliers(self, points: List[PricePoint]) -> List[int]:
        """
        Flag points whose daily return is far from the trailing window.

        The trailing statistics use only returns strictly before the point.
        """
        if len(points) <= self.outlier_window + 1:
            return []

        closes = pd.Series([p.close for p in points], dtype=float)
        returns = closes.pct_change()
        trailing = returns.shift(1).rolling(window=self.outlier_window, min_periods=self.outlier_window)
        trailing_mean = trailing.mean()
        trailing_std = trailing.std().clip(lower=MIN_TRAILING_STD)

        deviation = (returns - trailing_mean).abs()
        flags = (deviation > self.outlier_threshold * trailing_std).fillna(False)
        return [int(i) for i in np.flatnonzero(flags.to_numpy(dtype=bool))]

    @staticmethod
    def calculate_quality_score(points: List[PricePoint], interpolated_percent: float,
                                gaps: List[PriceGap]) -> float:
        """Weighted 0-100 score: completeness 40%, gap penalty 30%, density 30%"""
        if not points:
            return 0.0

        completeness = 1 - interpolated_percent

        large_gaps = sum(1 for g in gaps if g.gap_days > MAX_INTERPOLATION_GAP + 1)
        gap_penalty = max(0.0, 1 - large_gaps / 10)

        total_days = (points[-1].date - points[0].date).days
        expected_trading_days = int(total_days * 5 / 7)
        density = min(1.0, len(points) / expected_trading_days) if expected_trading_days > 0 else 1.0

        score = (completeness * 0.4 + gap_penalty * 0.3 + density * 0.3) * 100
        return round(score, 1)

    @staticmethod
    def count_missing_days(points: List[PricePoint]) -> int:
        """Calendar days in the span without a point (weekends and holidays included)"""
        if len(points) < 2:
            return 0
        total_days = (points[-1].date - points[0].date).days
        return total_days - len(points) + 1


def is_quality_acceptable(result: DataQualityResult,
                          max_interpolation_percent: float = MAX_INTERPOLATION_PERCENT,
                          min_quality_score: float = MIN_QUALITY_SCORE) -> bool:
    """Gate used before training: little synthetic data and a decent score"""
    return (
        result.interpolated_percent <= max_interpolation_percent
        and result.quality_score >= min_quality_score
    )
