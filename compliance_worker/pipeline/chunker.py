def chunk_text(text: str, chunk_size: int, overlap_size: int) -> list[str]:
    """Split ``text`` into overlapping chunks of at most ``chunk_size`` characters.

    Input no longer than ``chunk_size`` yields exactly one chunk equal to the
    input (including the empty string). Otherwise chunk ``k`` starts at
    ``k * (chunk_size - overlap_size)`` and the sequence ends with the first
    chunk that reaches the end of the input.

    Raises:
        ValueError: if the sizes are not positive or the overlap is not
            smaller than the chunk size.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap_size < 0 or overlap_size >= chunk_size:
        raise ValueError(
            f"overlap_size must be in [0, chunk_size), got {overlap_size} for chunk_size {chunk_size}"
        )
    if len(text) <= chunk_size:
        return [text]

    step = chunk_size - overlap_size
    chunks: list[str] = []
    start = 0
    while True:
        end = min(start + chunk_size, len(text))
        chunks.append(text[start:end])
        if end == len(text):
            return chunks
        start += step
