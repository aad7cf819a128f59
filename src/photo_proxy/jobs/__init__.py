"""Job lifecycle: models, persistence, dispatch and HTTP routes."""
