"""makeaxe, the Tomahawk resolver bundle creator.

Packages a resolver source directory into an ``.axe`` bundle and
optionally publishes it to a Relaxe catalog.
"""

from makeaxe.__version__ import __version__
