"""ts-scaffolder: TypeScript project scaffolding and rollup build driver.

Two entry points share this package:

* ``ts-scaffolder-init`` copies the project template into the current
  directory and wires ``package.json`` scripts to the build driver.
* ``ts-scaffolder-scripts`` resolves ``ts-scaffolder.json`` (plus ``.env``,
  environment variables and CLI flags), assembles the rollup pipeline and runs
  it once or in watch mode.
"""

__version__ = "0.3.0"
