"""Alert engine exceptions."""


class AlertPipelineError(Exception):
    """One or more pipeline steps failed during a single attempt."""

    def __init__(self, failures: dict[str, BaseException]):
        self.failures = failures
        steps = ", ".join(f"{name}: {exc!r}" for name, exc in failures.items())
        super().__init__(f"{len(failures)} alert step(s) failed ({steps})")


class DuplicateOpenAlertError(Exception):
    """Reopening an alert would collide with an open alert for the same item and title."""

    def __init__(self, alert_id: str):
        self.alert_id = alert_id
        super().__init__(f"An open alert with the same key already exists (reopening {alert_id})")
