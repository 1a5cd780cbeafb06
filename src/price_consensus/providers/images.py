"""Image payload helpers shared by the provider transports."""

DEFAULT_MEDIA_TYPE = 'image/jpeg'


def is_url(image: str) -> bool:
    return image.startswith('http://') or image.startswith('https://')


def split_data_uri(image: str) -> tuple[str, str]:
    """
    Split an image string into (media_type, base64_data).

    Accepts either a ``data:<type>;base64,<data>`` URI or bare base64.
    """
    if image.startswith('data:') and ',' in image:
        header, data = image.split(',', 1)
        media_type = header[5:].split(';', 1)[0] or DEFAULT_MEDIA_TYPE
        return media_type, data
    return DEFAULT_MEDIA_TYPE, image


def to_data_uri(image: str) -> str:
    """Return a URL or data URI suitable for OpenAI-style image_url parts."""
    if is_url(image) or image.startswith('data:'):
        return image
    return f'data:{DEFAULT_MEDIA_TYPE};base64,{image}'
