"""
CLI commands for slogate.
"""

from slogate.cli.budget import budget_all_command, budget_health_command, budget_show_command
from slogate.cli.definitions import (
    init_db_command,
    prune_command,
    slo_define_command,
    sli_register_command,
)
from slogate.cli.deploy import (
    deploy_check_command,
    deploy_list_command,
    deploy_override_command,
    deploy_show_command,
)
from slogate.cli.record import record_events_command, record_latency_command

__all__ = [
    "budget_all_command",
    "budget_health_command",
    "budget_show_command",
    "deploy_check_command",
    "deploy_list_command",
    "deploy_override_command",
    "deploy_show_command",
    "init_db_command",
    "prune_command",
    "record_events_command",
    "record_latency_command",
    "slo_define_command",
    "sli_register_command",
]
