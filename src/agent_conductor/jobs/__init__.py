"""Job lifecycle tracking: state machine, service, risk policy and audit trail."""
