"""
Per-symbol evaluation pipeline.
Coordinates quality repair, market features, training, prediction and backtesting.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from backtest.engine import BacktestEngine
from config import EngineConfig
from data_manager.data_quality import DataQualityPipeline
from data_manager.market_features import MarketFeatureEngineer
from errors import DataError, EngineError, OperationCancelled, PredictionError, wrap_errors
from forecast.arch_forecaster import ArchForecaster
from forecast.base import Forecaster
from forecast.ensemble import EnsembleCombiner
from forecast.prediction import PredictionEngine, generate_signal
from models import (BacktestResult, DataQualityResult, ForecastMetrics, MarketFeatures,
                    PredictionResult, PricePoint, TradingSignal, as_points)
from utils.interrupt import CancellationToken
from utils.progress import ProgressMonitor
from utils.visualization import BacktestVisualizer

logger = logging.getLogger(__name__)

STATUS_OK = 'ok'
STATUS_LOW_QUALITY = 'low-quality'
STATUS_INSUFFICIENT_DATA = 'insufficient-data'
STATUS_MODEL_ERROR = 'model-error'
STATUS_PREDICTION_ERROR = 'prediction-error'
STATUS_CANCELLED = 'cancelled'

ForecasterFactory = Callable[[str, EngineConfig], Forecaster]


@dataclass
class SymbolReport:
    """Everything produced for one symbol, or the reason it stopped"""
    symbol: str
    status: str
    quality: Optional[DataQualityResult] = None
    metrics: Optional[ForecastMetrics] = None
    prediction: Optional[PredictionResult] = None
    signal: Optional[TradingSignal] = None
    backtest: Optional[BacktestResult] = None
    error: Optional[str] = None
    plots: List[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def default_forecaster(symbol: str, config: EngineConfig) -> Forecaster:
    """AR-GARCH ensemble over the configured architectures (single model when only one)"""
    architectures = config.model.architectures
    if len(architectures) == 1:
        return ArchForecaster.from_config(symbol, architectures[0], config)
    return EnsembleCombiner(
        symbol=symbol,
        factory=lambda arch: ArchForecaster.from_config(symbol, arch, config),
        architectures=architectures,
        window_size=config.model.window_size,
    )


def status_for(error: EngineError) -> str:
    """Map an engine error to a report status"""
    if isinstance(error, OperationCancelled):
        return STATUS_CANCELLED
    if isinstance(error, DataError):
        return STATUS_INSUFFICIENT_DATA
    if isinstance(error, PredictionError):
        return STATUS_PREDICTION_ERROR
    return STATUS_MODEL_ERROR


def evaluate_symbol(symbol: str,
                    raw: List[PricePoint],
                    index: Optional[List[PricePoint]] = None,
                    vix: Optional[List[PricePoint]] = None,
                    config: Optional[EngineConfig] = None,
                    forecaster_factory: Optional[ForecasterFactory] = None,
                    cancel_token: Optional[CancellationToken] = None,
                    on_progress: Optional[Callable[[int, int], None]] = None,
                    run_backtest: bool = True,
                    plot_dir: Optional[Path] = None) -> SymbolReport:
    """
    Run the full evaluation for one symbol.

    Parameters:
    -----------
    symbol : str
        Ticker under evaluation
    raw : list of PricePoint, list of dict or DataFrame
        Provider series, ascending by date
    index, vix : same forms as ``raw``, optional
        Benchmark and volatility index series for market features
    config : EngineConfig, optional
        Engine configuration (defaults when omitted)
    forecaster_factory : callable, optional
        Builds an untrained forecaster as factory(symbol, config)
    cancel_token : CancellationToken, optional
        Checked by the sampling and backtest loops
    on_progress : callable, optional
        Backtest progress as on_progress(current, total)
    run_backtest : bool
        Skip the walk-forward backtest when False
    plot_dir : Path, optional
        Save prediction and equity plots here

    Returns:
    --------
    SymbolReport
        Engine errors are reported through ``status``; anything else propagates
    """
    config = config or EngineConfig()
    factory = forecaster_factory or default_forecaster
    report = SymbolReport(symbol=symbol, status=STATUS_OK)

    try:
        config.validate()
        with wrap_errors("price conversion", symbol, DataError):
            raw = as_points(raw)
            index = as_points(index)
            vix = as_points(vix)
        quality_pipeline = DataQualityPipeline(
            outlier_window=config.quality.outlier_window,
            outlier_threshold=config.quality.outlier_threshold,
            max_interpolation_percent=config.quality.max_interpolation_percent,
            min_quality_score=config.quality.min_quality_score,
            business_days=config.quality.business_days,
        )
        report.quality = quality_pipeline.process_data(raw, symbol)
        try:
            quality_pipeline.require_acceptable(report.quality, symbol)
        except DataError as e:
            report.status = STATUS_LOW_QUALITY
            report.error = str(e)
            return report

        series = report.quality.data
        features: List[MarketFeatures] = []
        if index:
            features = MarketFeatureEngineer().calculate_features(symbol, series, index, vix or [])

        forecaster = factory(symbol, config)
        logger.info(f"Training {forecaster.kind.value} forecaster for {symbol} on {len(series)} points")
        report.metrics = forecaster.train(series, config, features=features)
        if not report.metrics.is_valid:
            logger.warning(f"{symbol}: training loss {report.metrics.loss:.4f} flagged as invalid")

        prediction_engine = PredictionEngine(config.prediction.uncertainty_iterations, cancel_token)
        report.prediction = prediction_engine.predict(
            forecaster, series, config.prediction.days, features=features
        )
        report.signal = generate_signal(report.prediction, config.prediction)
        logger.info(f"{symbol}: {report.signal.action.value} - {report.signal.reason}")

        if run_backtest:
            engine = BacktestEngine(prediction_engine, config, cancel_token)
            report.backtest = engine.run(
                symbol, forecaster, series, features, config.backtest.days, on_progress
            )

        if plot_dir is not None:
            report.plots = _save_plots(symbol, series, report, Path(plot_dir))

    except EngineError as e:
        report.status = status_for(e)
        report.error = str(e)
        log = logger.warning if report.status == STATUS_CANCELLED else logger.error
        log(f"{symbol}: {e}")

    return report


def _save_plots(symbol: str, series: List[PricePoint], report: SymbolReport, plot_dir: Path) -> List[Path]:
    plot_dir.mkdir(parents=True, exist_ok=True)
    visualizer = BacktestVisualizer()
    paths = []
    try:
        path = plot_dir / f"{symbol}_prediction.png"
        visualizer.plot_prediction(series, report.prediction, save_path=path)
        paths.append(path)
        if report.backtest is not None:
            path = plot_dir / f"{symbol}_equity.png"
            visualizer.plot_equity_curve(report.backtest, series, save_path=path)
            paths.append(path)
    finally:
        visualizer.close_all()
    return paths


def evaluate_symbols(datasets: Dict[str, List[PricePoint]],
                     index: Optional[List[PricePoint]] = None,
                     vix: Optional[List[PricePoint]] = None,
                     config: Optional[EngineConfig] = None,
                     forecaster_factory: Optional[ForecasterFactory] = None,
                     cancel_token: Optional[CancellationToken] = None,
                     run_backtest: bool = True,
                     plot_dir: Optional[Path] = None,
                     show_progress: bool = True) -> Dict[str, SymbolReport]:
    """
    Evaluate several symbols sequentially.

    After cancellation the remaining symbols are reported as cancelled
    without being processed.
    """
    reports: Dict[str, SymbolReport] = {}
    monitor = ProgressMonitor(total=len(datasets), desc="Symbols", log_every=10, disable=not show_progress)
    with monitor:
        for symbol, raw in datasets.items():
            if cancel_token is not None and cancel_token.is_cancelled():
                reports[symbol] = SymbolReport(symbol=symbol, status=STATUS_CANCELLED,
                                               error=cancel_token.reason)
                continue
            reports[symbol] = evaluate_symbol(
                symbol, raw, index, vix, config, forecaster_factory,
                cancel_token=cancel_token, run_backtest=run_backtest, plot_dir=plot_dir,
            )
            monitor.update(1, status=f"{symbol} -> {reports[symbol].status}")

    ok = sum(1 for r in reports.values() if r.ok)
    logger.info(f"Evaluated {len(reports)} symbols: {ok} ok, {len(reports) - ok} skipped or failed")
    return reports
