# src/visit_scheduling/domain/exceptions.py


class InputError(ValueError):
    """Entrada estruturalmente inválida: aborta o planejamento antes da otimização."""
