"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth/User
  2xxx: Account
  3xxx: Plan
  5xxx: Position
  6xxx: Distribution
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth/User ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1003, "Invalid username or password", 401)


class AccountDisabledError(AppError):
    def __init__(self) -> None:
        super().__init__(1004, "Account is disabled", 403)


class InvalidRefreshTokenError(AppError):
    def __init__(self) -> None:
        super().__init__(1005, "Refresh token is invalid or expired", 401)


class AdminRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1006, "Admin access required", 403)


class InvalidSchedulerCredentialError(AppError):
    def __init__(self) -> None:
        super().__init__(1007, "Invalid or missing scheduler credential", 401)


# --- 2xxx: Account ---

class InsufficientBalanceError(AppError):
    def __init__(self, required: int, available: int) -> None:
        super().__init__(
            2001,
            f"Insufficient balance: required {required} cents, available {available} cents",
            422,
        )


class AccountNotFoundError(AppError):
    def __init__(self, user_id: str) -> None:
        super().__init__(2002, f"Account not found for user {user_id}", 404)


# --- 3xxx: Plan ---

class PlanNotFoundError(AppError):
    def __init__(self, plan_id: str) -> None:
        super().__init__(3001, f"Investment plan not found: {plan_id}", 404)


class PlanNotActiveError(AppError):
    def __init__(self, plan_id: str) -> None:
        super().__init__(3002, f"Investment plan is not active: {plan_id}", 422)


class InvestmentAmountOutOfRangeError(AppError):
    def __init__(self, amount: int, minimum: int, maximum: int | None) -> None:
        bound = f"[{minimum}, {maximum}]" if maximum is not None else f">= {minimum}"
        super().__init__(3003, f"Amount {amount} cents outside plan range {bound}", 422)


# --- 5xxx: Position ---

class PositionNotFoundError(AppError):
    def __init__(self, position_id: str) -> None:
        super().__init__(5001, f"Position not found: {position_id}", 404)


class PositionTerminalError(AppError):
    def __init__(self, position_id: str, status: str) -> None:
        super().__init__(
            5002, f"Position {position_id} is already terminal (status={status})", 422
        )


class InvalidStatusTransitionError(AppError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(5003, f"Cannot transition position from {current} to {target}", 422)


class AccrualFailedError(AppError):
    """One (position, period) atomic unit failed and was rolled back."""

    def __init__(self, position_id: str, period_index: int, detail: str = "") -> None:
        self.position_id = position_id
        self.period_index = period_index
        message = f"Accrual failed for position {position_id} period {period_index}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(5004, message, 500)


# --- 6xxx: Distribution ---

class DistributionUnavailableError(AppError):
    def __init__(self, detail: str = "Ledger store unreachable") -> None:
        super().__init__(6001, f"Distribution run failed: {detail}", 503)


class UnknownProductTypeError(AppError):
    def __init__(self, value: str) -> None:
        super().__init__(6002, f"Unknown product type: {value}", 404)


# --- 9xxx: System ---

class ConfigurationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Configuration error: {detail}", 500)


class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
