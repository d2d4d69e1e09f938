from urllib.parse import urlparse


def domain(url: str) -> str:
    """Host and port of the url without credentials, safe for logs and metric labels"""
    return urlparse(url).netloc.rpartition('@')[2] or url
