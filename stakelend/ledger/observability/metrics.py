# MIT License
# Copyright (c) 2025 Hashborn

"""
Prometheus Metrics Exporter

Exports ledger metrics in Prometheus format.

Metrics:
- Treasury totals (staked, loaned, held, excess)
- Account and loan counts
- Operation throughput and failures by error kind
- Defaults and minted rewards
"""

import logging
from prometheus_client import Counter, Gauge, CollectorRegistry

logger = logging.getLogger(__name__)

# Create registry for metrics
metrics_registry = CollectorRegistry()

# ═══════════════════════════════════════════════════════════════════
# TREASURY METRICS
# ═══════════════════════════════════════════════════════════════════

total_staked = Gauge(
    'stakelend_total_staked',
    'Total value staked across all accounts',
    registry=metrics_registry
)

total_loaned = Gauge(
    'stakelend_total_loaned',
    'Total owed on outstanding loans (principal + interest)',
    registry=metrics_registry
)

held_value = Gauge(
    'stakelend_held_value',
    'Value held by the ledger vault',
    registry=metrics_registry
)

excess_value = Gauge(
    'stakelend_excess_value',
    'Held value above staked + loaned (withdrawable by owner)',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# ACCOUNT METRICS
# ═══════════════════════════════════════════════════════════════════

accounts_total = Gauge(
    'stakelend_accounts_total',
    'Number of accounts with a non-zero stake',
    registry=metrics_registry
)

active_loans = Gauge(
    'stakelend_active_loans',
    'Number of accounts with an outstanding loan',
    registry=metrics_registry
)

# ═══════════════════════════════════════════════════════════════════
# OPERATION METRICS
# ═══════════════════════════════════════════════════════════════════

operations_total = Counter(
    'stakelend_operations_total',
    'Total number of committed operations',
    ['op_type'],
    registry=metrics_registry
)

operation_failures_total = Counter(
    'stakelend_operation_failures_total',
    'Total number of rejected operations',
    ['op_type', 'error_kind'],
    registry=metrics_registry
)

loans_terminated_total = Counter(
    'stakelend_loans_terminated_total',
    'Total number of loans terminated for being overdue',
    registry=metrics_registry
)

rewards_minted_total = Counter(
    'stakelend_rewards_minted_total',
    'Total reward currency minted',
    registry=metrics_registry
)


# ═══════════════════════════════════════════════════════════════════
# HELPER FUNCTIONS
# ═══════════════════════════════════════════════════════════════════

def update_metrics(node):
    """
    Update gauges from ledger state. Called when metrics are scraped.
    Counters are updated as operations happen.

    Args:
        node: LedgerNode instance
    """
    engine = node.engine

    total_staked.set(engine.get_total_staked())
    total_loaned.set(engine.get_total_loaned())
    held_value.set(engine.get_held_value())
    excess_value.set(engine.get_excess())

    accounts = engine.get_all_accounts()
    accounts_total.set(sum(1 for acc in accounts if acc.staked > 0))
    active_loans.set(sum(1 for acc in accounts if acc.loan_balance > 0))


def record_operation(op_type: str):
    operations_total.labels(op_type=op_type).inc()


def record_failure(op_type: str, error_kind: str):
    operation_failures_total.labels(op_type=op_type, error_kind=error_kind).inc()


def record_termination(**event):
    loans_terminated_total.inc()


def record_rewards(amount: int, **event):
    rewards_minted_total.inc(amount)
