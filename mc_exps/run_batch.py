#!/usr/bin/env python3
import os
import argparse
import warnings

import perctransport.utils.config as config
import perctransport.utils.analysis_utils as analysis_utils


def main():
    parser = argparse.ArgumentParser(
        description="Run Monte Carlo percolation/transport estimates for every JSON case file in a directory."
    )
    parser.add_argument("--cases", type=str, required=True, help="Directory of *.json case files (or one file).")
    parser.add_argument("--outdir", type=str, default="results")
    parser.add_argument("--n-jobs", type=int, default=1)
    parser.add_argument("--prefix", type=str, default="results")
    parser.add_argument("--cluster-stats", action="store_true",
                        help="Also write per-cluster statistics for cases with statistics enabled.")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    os.makedirs(args.outdir, exist_ok=True)
    stamp = analysis_utils.now_stamp()

    if os.path.isdir(args.cases):
        cases = config.load_cases(args.cases)
    else:
        cases = [config.load_case(args.cases)]
    if not cases:
        print(f"[WARN] No case files found in {args.cases}")
        return

    results = []
    for case in cases:
        image_dir = os.path.join(args.outdir, "images", stamp) if case.images.save_images else None
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            res = analysis_utils.monte_carlo(case, n_jobs=args.n_jobs, image_dir=image_dir, verbose=args.verbose)
        for w in caught:
            print(f"[WARN] {case.name}: {w.message}")
        results.append(res)
        print(f"[OK] {case.name}: P(percolation) = {res.percolation_probability:.4f}, "
              f"sigma = {res.electric_conductivity:.4e} ({res.elapsed:.1f} s)")

        if args.cluster_stats and case.flags.calc_statistics:
            path = os.path.join(args.outdir, f"{args.prefix}_{stamp}_{case.name}_clusters.csv")
            analysis_utils.save_cluster_statistics(res, path)
            print(f"[OK] Wrote {path}")

    frame = analysis_utils.case_results_frame(results)
    comma, semi = analysis_utils.save_case_report(frame, args.outdir, stamp, prefix=args.prefix)
    print(f"[OK] Wrote {comma}")
    print(f"[OK] Wrote {semi}")


if __name__ == "__main__":
    main()
