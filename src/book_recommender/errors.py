class BookRecommenderError(RuntimeError):
    pass


class TransportError(BookRecommenderError):
    """The server could not be reached or answered with something unreadable."""
