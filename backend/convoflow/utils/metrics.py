# backend/convoflow/utils/metrics.py

from prometheus_client import Counter, Histogram, Gauge

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Conversation Metrics
message_counter = Counter('convoflow_messages_total', 'Inbound messages processed', ['channel', 'outcome'])
message_processing_histogram = Histogram('convoflow_message_processing_seconds', 'Time spent processing one inbound message')
state_transition_counter = Counter('convoflow_state_transitions_total', 'Bot state transitions', ['from_state', 'to_state'])
command_counter = Counter('convoflow_commands_total', 'System commands detected', ['command', 'outcome'])
active_sessions_gauge = Gauge('convoflow_active_sessions', 'Sessions currently held by the session store')

# Workflow Metrics
workflow_event_counter = Counter('convoflow_workflow_events_total', 'Workflow lifecycle events', ['workflow_id', 'event'])
validation_failure_counter = Counter('convoflow_validation_failures_total', 'Rejected user answers', ['workflow_id', 'error_code'])

# Collaborator Metrics
service_call_counter = Counter('convoflow_service_calls_total', 'Business service calls', ['service', 'method', 'status'])
ai_requests_counter = Counter('convoflow_ai_requests_total', 'Total AI requests', ['model', 'status'])
database_operations_counter = Counter('convoflow_database_operations_total', 'Database operations', ['operation', 'status'])

# HTTP Metrics
response_time_histogram = Histogram('convoflow_response_time_seconds', 'Response time in seconds', ['endpoint'])
