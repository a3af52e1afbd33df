"""
=============================================================================
TRANSLATION SERVER
=============================================================================

A minimal HTTP/1.1 front end, on raw sockets, for a translation engine
that can only run one job at a time.

    POST /translate
    {"text": "Hello, World!", "source_language": "en", "target_language": "zh-Hans"}

    HTTP/1.1 200 OK
    {"translated_text":"你好，世界！"}

=============================================================================
QUICK START
=============================================================================

    from translation_server import ServerConfig, TranslationServer
    from translation_server.translation import FunctionCapability

    server = TranslationServer(
        ServerConfig(port=0),
        capability=FunctionCapability(lambda text, src, tgt: text.upper()),
    )
    server.start()
    print(server.port)
    ...
    server.stop()

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import ServerState, TranslationServer, setup_logging

__all__ = ["ServerConfig", "ServerState", "TranslationServer", "setup_logging", "__version__"]
