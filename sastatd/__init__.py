"""sastatd - per-user SpamAssassin statistics daemon.

Follows the mail log written by spamd, counts clean and spam verdicts
with their scores per recipient, keeps the totals in a JSON snapshot and
serves them over a small line protocol on TCP port 4321.
"""

__version__ = "0.1.0"
