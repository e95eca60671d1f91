#!/usr/bin/env python3
"""Run a spatial cluster scan and export circles and density raster.

Loads population and case point tables, runs a Besag-Newell or GAM scan,
and writes the significant circles (GeoJSON) and the kernel density
surface (GeoTIFF).

Usage:
    python run_cluster_scan.py --population pop.csv --pop-field pop \\
        --cases cases.csv --case-field count --method gam

    # Or with a config file and overrides
    python run_cluster_scan.py --population pop.csv --pop-field pop \\
        --cases cases.csv --case-field count --method besag_newell \\
        --config cluster_config.json --neighbours 15
"""

import argparse
import os
import sys

from cluster_detection import (
    circles_to_geojson,
    load_config,
    load_points_df,
    make_scanner,
    scanner_kwargs,
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Detect significant case clusters with a Besag-Newell or GAM scan"
    )
    parser.add_argument("--population", required=True,
                        help="Population point table (CSV, JSON or JSONL)")
    parser.add_argument("--pop-field", required=True,
                        help="Population weight column")
    parser.add_argument("--cases", required=True,
                        help="Case point table (CSV, JSON or JSONL)")
    parser.add_argument("--case-field", required=True,
                        help="Case weight column")
    parser.add_argument("--x-col", default="x", help="X coordinate column (default: x)")
    parser.add_argument("--y-col", default="y", help="Y coordinate column (default: y)")
    parser.add_argument("--crs", default=None,
                        help="CRS of the input coordinates, e.g. EPSG:32145 (optional)")
    parser.add_argument("--method", choices=["gam", "besag_newell"], default="gam",
                        help="Scan strategy (default: gam)")
    parser.add_argument("--config", default=None,
                        help="JSON configuration file; flags below override it")
    parser.add_argument("--function-type", default=None,
                        help="Fitness function: poisson, relative or relative_percent")
    parser.add_argument("--threshold", type=float, default=None,
                        help="Significance threshold (default: 0.01)")
    parser.add_argument("--neighbours", type=int, default=None,
                        help="Besag-Newell: number of neighbours (default: 10)")
    parser.add_argument("--min-radius", type=float, default=None,
                        help="GAM: smallest circle radius (default: derived from extent)")
    parser.add_argument("--max-radius", type=float, default=None,
                        help="GAM: largest circle radius (default: 5 x min radius)")
    parser.add_argument("--radius-increment", type=float, default=None,
                        help="GAM: radius step (default: min radius / 2)")
    parser.add_argument("--overlap-ratio", type=float, default=None,
                        help="GAM: circle overlap ratio in [0, 1] (default: 0.5)")
    parser.add_argument("--n-jobs", type=int, default=None,
                        help="GAM: parallel workers over radii (default: 1)")
    parser.add_argument("--cell-size", type=float, default=None,
                        help="Density raster cell size (default: extent / 500)")
    parser.add_argument("--standardize", action="store_true",
                        help="Standardize raster kernels to sum to 1")
    parser.add_argument("--out", default="cluster_out",
                        help="Output directory (default: cluster_out)")
    return parser


def main() -> None:
    """Run the scan described by the command line.

    Raises:
        SystemExit: If data loading or the scan fails.
    """
    args = build_parser().parse_args()

    config = load_config(args.config)
    kwargs = scanner_kwargs(config, args.method)
    overrides = {
        "function_type": args.function_type,
        "threshold": args.threshold,
        "cell_size": args.cell_size,
    }
    if args.method == "gam":
        overrides.update({
            "min_radius": args.min_radius,
            "max_radius": args.max_radius,
            "radius_increment": args.radius_increment,
            "overlap_ratio": args.overlap_ratio,
            "n_jobs": args.n_jobs,
        })
    else:
        overrides["neighbours"] = args.neighbours
    kwargs.update({k: v for k, v in overrides.items() if v is not None})
    if args.standardize:
        kwargs["standardize"] = True

    os.makedirs(args.out, exist_ok=True)

    print(f"[INFO] Loading population from {args.population} and cases from {args.cases}...")
    try:
        population = load_points_df(args.population, args.x_col, args.y_col)
        cases = load_points_df(args.cases, args.x_col, args.y_col)
    except (FileNotFoundError, ValueError) as e:
        print(f"[ERROR] Failed to load data: {e}")
        sys.exit(1)
    print(f"[INFO] Loaded {len(population)} population and {len(cases)} case points")

    scanner = make_scanner(args.method, **kwargs)
    print(f"[INFO] Running {args.method} scan...")
    try:
        scanner.fit(population, args.pop_field, cases, args.case_field,
                    x_col=args.x_col, y_col=args.y_col, crs=args.crs)
    except ValueError as e:
        print(f"[ERROR] Scan failed: {e}")
        sys.exit(1)

    info = scanner.info()
    print(f"[INFO] density={info['density']:.6g}, significant circles={info['n_circles']}")

    circles_path = os.path.join(args.out, f"{args.method}_circles.geojson")
    circles_to_geojson(scanner.hotspots(), circles_path)
    print(f"[OK] Exported circles to {circles_path}")

    raster = scanner.density_raster()
    raster_path = os.path.join(args.out, f"{args.method}_density.tif")
    raster.to_geotiff(raster_path)
    print(f"[OK] Exported {raster.width}x{raster.height} density raster to {raster_path}")

    print("[DONE] Cluster scan complete.")


if __name__ == "__main__":
    main()
