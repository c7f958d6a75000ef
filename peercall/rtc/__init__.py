"""RTC 패키지

aiortc 어댑터는 peercall.rtc.aiortc_connection에서 직접 import
"""

from peercall.rtc.peer_connection import OfferOptions, PeerConnection

__all__ = ["OfferOptions", "PeerConnection"]
