"""Booking validation and transport errors."""


class BookingValidationError(Exception):
    """A recoverable, user-facing rule failure rendered inline by the UI."""

    rule: str = "form"
    default_message: str = "Selección inválida"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class PastDateError(BookingValidationError):
    rule = "date"
    default_message = "No puedes seleccionar fechas pasadas"


class InvalidDateError(BookingValidationError):
    rule = "date"
    default_message = "Fecha inválida"


class IncompatibleModalityError(BookingValidationError):
    rule = "compatibility"
    default_message = "La modalidad seleccionada no está disponible en esta sede"


class SlotNotFoundError(BookingValidationError):
    rule = "slot"
    default_message = "Horario no disponible"


class NoCapacityError(BookingValidationError):
    rule = "slot"
    default_message = "No hay capacidad disponible"


class NetworkError(RuntimeError):
    """The Scheduling API could not be reached or answered with a failure.

    Distinct from the rule failures above: the user should retry rather than
    pick another slot.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
