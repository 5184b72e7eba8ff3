"""
Error kinds raised by the recipe service.

Each carries the HTTP status the API layer renders it with; main.py
registers a single handler for the base class.
"""


class RecipeServiceError(Exception):
    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class UnknownElement(RecipeServiceError):
    status_code = 404

    def __init__(self, name: str) -> None:
        super().__init__(f"Element '{name}' not found")
        self.name = name


class MalformedRequest(RecipeServiceError):
    status_code = 400


class InvalidAlgorithm(RecipeServiceError):
    status_code = 400

    def __init__(self, algorithm: str, allowed) -> None:
        super().__init__(f"Invalid algorithm '{algorithm}'. Use one of: {', '.join(allowed)}")
        self.algorithm = algorithm


class EncodeFailure(RecipeServiceError):
    status_code = 500


class InternalSearchFailure(RecipeServiceError):
    status_code = 500


class CorpusLoadFailure(RecipeServiceError, ValueError):
    pass
