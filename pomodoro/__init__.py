"""
pomodoro

Countdown timers that keep accurate time while the host context is
backgrounded, throttled or suspended.
"""

__version__ = "1.0.0"
