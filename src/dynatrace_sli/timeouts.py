"""
Timeout constants for the Dynatrace SLI service.

Centralizes timeout values for every external call so that a slow
collaborator can never stall a retrieval request indefinitely.
"""

from __future__ import annotations

# =============================================================================
# HTTP Client Timeouts
# =============================================================================

# Dynatrace Metrics API query
DYNATRACE_QUERY_TIMEOUT_S = 30.0

# Configuration service resource fetch
CONFIG_SERVICE_TIMEOUT_S = 10.0

# Event broker delivery
EVENTBROKER_TIMEOUT_S = 10.0

# =============================================================================
# Kubernetes API Timeouts
# =============================================================================

# Connect timeout for K8s API calls
K8S_API_CONNECT_TIMEOUT_S = 3

# Read timeout for K8s API calls
K8S_API_READ_TIMEOUT_S = 5

# =============================================================================
# Dynatrace ingestion
# =============================================================================

# Dynatrace needs roughly a minute to make freshly recorded data queryable
DT_INGEST_DELAY_S = 60
