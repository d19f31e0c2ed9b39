import string

_ALPHABET = string.ascii_uppercase


def hint_label(position: int) -> str:
	"""Bijective base-26 label for a 1-indexed position: 1 -> A, 26 -> Z, 27 -> AA, 703 -> AAA."""
	if position < 1:
		raise ValueError(f'Hint positions start at 1, got {position}')
	letters: list[str] = []
	while position > 0:
		position, remainder = divmod(position - 1, 26)
		letters.append(_ALPHABET[remainder])
	return ''.join(reversed(letters))


def hint_labels(count: int) -> list[str]:
	return [hint_label(position) for position in range(1, count + 1)]
