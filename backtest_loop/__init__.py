from .errors import BacktestLoopError, InvalidSeriesError, NotInitializedError, DuplicateStartError, ClockRegressionError
from .event import Event, Batch, Status, StatusEvent
from .event_engine import EventEngine, Component
from .timeseries import TimeSeries
from .cursor import StreamCursor, EXHAUSTED
from .clock import SimulationClock
from .gate import AcknowledgementGate, GateState
from .scheduler import MergeScheduler, SchedulerConfig, TickResult, LagPolicy
from .dataset import Dataset, DataFrameSource, ParquetSource, CsvSource
from .recorder import BatchRecorder
from .helper import EventPrinter, StatusTracer, BatchCollector
