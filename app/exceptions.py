class CobranzaError(ValueError):
    """Error de negocio. Se responde con 400 y el mensaje tal cual."""
    status_code = 400


class NotFoundError(CobranzaError):
    status_code = 404


class DuplicateError(CobranzaError):
    """Violación de unicidad detectada antes (o en lugar) del error crudo de la BD."""
    status_code = 400
