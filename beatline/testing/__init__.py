"""Testing helpers shipped with the package.

``beatline.testing.contract`` holds the pytest contract suite and needs
pytest installed; ``FakeBdRunner`` has no test-only dependencies.
"""

from beatline.testing.fake_bd import FakeBdRunner

__all__ = ["FakeBdRunner"]
