"""Interceptors for RTP/RTCP streams, TWCC feedback handling and congestion control building blocks."""

__version__ = "0.1.0"