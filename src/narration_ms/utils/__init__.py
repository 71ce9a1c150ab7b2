"""
Utility Modules for narration-ms.

    - audio.py: MP3 duration estimation
    - timeit.py: Stage timing
"""
