#!/usr/bin/env python3
import os
import argparse

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt


def main():
    parser = argparse.ArgumentParser(
        description="Plot percolation probability and conductivity against filler fraction from a results CSV."
    )
    parser.add_argument("--csv", type=str, required=True)
    parser.add_argument("--x", type=str, default="Area Fraction 1", help="Column used as the x axis.")
    parser.add_argument("--outdir", type=str, default="plots")
    args = parser.parse_args()

    if not os.path.exists(args.csv):
        raise FileNotFoundError(f"Results file not found: {args.csv}")
    df = pd.read_csv(args.csv).sort_values(args.x)
    os.makedirs(args.outdir, exist_ok=True)
    base = os.path.splitext(os.path.basename(args.csv))[0]

    fig, ax = plt.subplots(figsize=(6, 4), constrained_layout=True)
    ax.plot(df[args.x], df["Mean Percolation Probability"], "o-", color="k")
    ax.set_xlabel(args.x)
    ax.set_ylabel("Percolation probability")
    ax.set_ylim(-0.05, 1.05)
    out = os.path.join(args.outdir, f"{base}_percolation.png")
    fig.savefig(out, dpi=200)
    plt.close(fig)
    print(f"[OK] Wrote {out}")

    if "Electric Conductivity" in df.columns:
        sigma = df["Electric Conductivity"].to_numpy()
        keep = sigma > 0
        if not np.any(keep):
            print("[WARN] No positive conductivities to plot.")
            return
        fig, ax = plt.subplots(figsize=(6, 4), constrained_layout=True)
        ax.semilogy(df[args.x][keep], sigma[keep], "s-", color="tab:blue", label="path model")
        if "FDM Iy" in df.columns:
            fdm = df["FDM Iy"].to_numpy()
            ax.semilogy(df[args.x][fdm > 0], fdm[fdm > 0], "^--", color="tab:red", label="finite difference")
        ax.set_xlabel(args.x)
        ax.set_ylabel(r"$\sigma_{\mathrm{eff}}$")
        ax.legend()
        out = os.path.join(args.outdir, f"{base}_conductivity.png")
        fig.savefig(out, dpi=200)
        plt.close(fig)
        print(f"[OK] Wrote {out}")


if __name__ == "__main__":
    main()
