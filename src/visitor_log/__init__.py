from .config import Settings as Settings, load_settings as load_settings
from .consent import ConsentGate as ConsentGate, ConsentState as ConsentState
from .errors import (
    ConfigError as ConfigError,
    ConsentError as ConsentError,
    PersistenceReadFailure as PersistenceReadFailure,
    ProviderFailure as ProviderFailure,
    ProviderTimeout as ProviderTimeout,
    SinkDeliveryFailure as SinkDeliveryFailure,
    VisitorLogError as VisitorLogError,
)
from .exporter import from_json as from_json, to_json as to_json, to_text as to_text
from .ip_reconciliation import (
    IPKind as IPKind,
    IPObservation as IPObservation,
    IPReconciliationResult as IPReconciliationResult,
    reconcile as reconcile,
)
from .orchestrator import Orchestrator as Orchestrator, run_all as run_all
from .page_load import VisitorLogger as VisitorLogger
from .provider_spi import (
    AttributeProvider as AttributeProvider,
    Failed as Failed,
    Ok as Ok,
    ProviderKind as ProviderKind,
    ProviderResult as ProviderResult,
    TimedOut as TimedOut,
)
from .record import CompositeRecord as CompositeRecord
from .session import SessionAccumulator as SessionAccumulator
from .store import TelemetryLogStore as TelemetryLogStore

__version__ = "0.1.0"
