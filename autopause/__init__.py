"""Auto-pause for looping short-form video feeds.

Tracks the video the user is currently watching and pauses it after a number
of seconds or a number of loops.
"""
