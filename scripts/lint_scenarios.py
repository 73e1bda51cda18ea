#!/usr/bin/env python
"""
Check the authored scenarios against the catalog.

Exits 1 when any error-level finding is reported.

Usage:
    python scripts/lint_scenarios.py [scenarios.json]
"""
import sys
from pathlib import Path

# Add src to path
src_path = Path(__file__).parent.parent / 'src'
sys.path.insert(0, str(src_path))

from k2_storefront.catalog.product_catalog import ProductCatalog
from k2_storefront.engine.scenario_catalog import lint_scenarios, load_scenarios


def main():
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    scenarios = load_scenarios(path)
    catalog = ProductCatalog.from_json()

    findings = lint_scenarios(scenarios, catalog)
    for finding in findings:
        print(finding)

    errors = [f for f in findings if f.severity == "error"]
    print(f"\n{len(scenarios)} scenarios, {len(errors)} error(s), {len(findings) - len(errors)} warning(s)")
    sys.exit(1 if errors else 0)


if __name__ == "__main__":
    main()
