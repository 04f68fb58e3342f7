# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports ledger metrics in Prometheus format.

Metrics:
- Operations applied / failed by type, apply latency
- Lock arena size and active locks
- Custody balances (locked principal, unclaimed rewards), share supply
- Published windows and claimed amounts
"""

from prometheus_client import Counter, Gauge, Histogram, CollectorRegistry

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'sharelock_operations_total',
    'Total number of submitted operations',
    ['op_type', 'status'],
    registry=metrics_registry
)

operation_errors_total = Counter(
    'sharelock_operation_errors_total',
    'Rejected operations by error kind',
    ['kind'],
    registry=metrics_registry
)

operation_apply_seconds = Histogram(
    'sharelock_operation_apply_seconds',
    'Time to verify, apply and persist one operation',
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1],
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# LOCK METRICS
# ═══════════════════════════════════════════════════════════════════

locks_length = Gauge(
    'sharelock_locks_length',
    'Number of lock slots ever created (arena length)',
    registry=metrics_registry
)

locks_active = Gauge(
    'sharelock_locks_active',
    'Number of locks not yet withdrawn',
    registry=metrics_registry
)

total_locked = Gauge(
    'sharelock_total_locked',
    'Deposit token held by the lock custody',
    registry=metrics_registry
)

share_supply = Gauge(
    'sharelock_share_supply',
    'Outstanding reward shares',
    registry=metrics_registry
)

config_version = Gauge(
    'sharelock_config_version',
    'Version of the active staking config',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# DISTRIBUTION METRICS
# ═══════════════════════════════════════════════════════════════════

windows_total = Gauge(
    'sharelock_windows_total',
    'Number of published distribution windows',
    registry=metrics_registry
)

distributor_balance = Gauge(
    'sharelock_distributor_balance',
    'Reward token held by the distributor custody',
    registry=metrics_registry
)

claims_total = Counter(
    'sharelock_claims_total',
    'Total number of paid claims',
    registry=metrics_registry
)

claimed_amount_total = Counter(
    'sharelock_claimed_amount_total',
    'Total reward token paid out through claims',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def update_metrics(ledger):
    """
    Update gauges from the committed ledger state.
    Called after every commit and when metrics are scraped.

    Args:
        ledger: Ledger instance
    """
    state = ledger.state

    share_supply.set(state.share_token.total_supply)
    if not state.initialized:
        return

    locks_length.set(state.locks.get_locks_length())
    locks_active.set(state.locks.active_locks)
    total_locked.set(state.locks.total_locked)
    config_version.set(state.config.version)

    windows_total.set(state.windows.get_windows_length())
    distributor_balance.set(state.claims.custody_balance)


def update_operation_metrics(receipt, duration: float = None):
    """
    Update counters for one submitted operation.

    Args:
        receipt: OperationReceipt of the operation
        duration: Seconds spent applying it
    """
    operations_total.labels(op_type=receipt.op_type, status=receipt.status).inc()
    if receipt.error_kind:
        operation_errors_total.labels(kind=receipt.error_kind).inc()
    if duration is not None:
        operation_apply_seconds.observe(duration)

    for event_type, data in receipt.events:
        if event_type == 'claimed':
            claims_total.inc()
            claimed_amount_total.inc(data.get('amount', 0))
