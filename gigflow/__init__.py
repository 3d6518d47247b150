"""
GigFlow

Freelance marketplace service: clients post gigs, freelancers bid, and a
gig owner hires exactly one bidder, safely under concurrent hire requests.
"""

__version__ = "1.0.0"
