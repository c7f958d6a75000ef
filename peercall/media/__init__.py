"""Media 패키지

코덱 카탈로그, SDP 파싱/재작성, 로컬 미디어 소스
"""

from peercall.media.codec_catalog import CodecCatalog, CodecDescriptor, MediaKind, DEFAULT_CATALOG
from peercall.media.sdp_parser import SDPParser
from peercall.media.sdp_rewriter import DescriptionRewriter, RewriteReport
from peercall.media.media_source import LocalMedia, MediaConstraints, MediaSource

__all__ = [
    "CodecCatalog",
    "CodecDescriptor",
    "MediaKind",
    "DEFAULT_CATALOG",
    "SDPParser",
    "DescriptionRewriter",
    "RewriteReport",
    "LocalMedia",
    "MediaConstraints",
    "MediaSource",
]
