import time

from verifychat.settings import settings


def now_ms() -> int:
    return int(time.time() * 1000)


def reading_delay_ms(text: str) -> int:
    """
    Suggested delay before revealing what follows a message, in milliseconds.
    Grows with text length up to READING_DELAY_MAX_MS. A message without text
    (an uncaptioned image or gif) gets MEDIA_DELAY_MS.
    """
    text = (text or "").strip()
    if not text:
        return settings.MEDIA_DELAY_MS
    delay = settings.READING_DELAY_BASE_MS + settings.READING_DELAY_PER_CHAR_MS * len(text)
    return int(min(settings.READING_DELAY_MAX_MS, delay))
