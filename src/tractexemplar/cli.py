"""
TractExemplar Command-Line Interface

Generates connectome exemplar streamlines and inspects MRtrix image headers.
"""

import argparse
import sys
import json
import logging
from pathlib import Path

from .utils.logger import get_logger, log_decision


def main(argv=None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="TractExemplar: Representative streamlines for connectome edges",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate one exemplar per edge
  tractexemplar exemplars --streamlines tracks.tck --parcellation atlas.nii.gz --output exemplars.tck

  # Use streamline weights and several threads
  tractexemplar exemplars --streamlines tracks.tck --parcellation atlas.nii.gz \\
      --weights sift2_weights.txt --threads 8 --output exemplars.tck

  # Inspect an MRtrix image header
  tractexemplar header --input image.mih --output header.json
        """
    )

    parser.add_argument('--version', action='version', version='TractExemplar 0.1.0')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--debug', action='store_true', help='Debug mode')
    parser.add_argument('--log-dir', default='logs', help='Directory for log files (default: logs)')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # Exemplars command
    exemplar_parser = subparsers.add_parser('exemplars', help='Generate connectome exemplar streamlines')
    exemplar_parser.add_argument('--streamlines', required=True, help='Streamlines file (TRK/TCK)')
    exemplar_parser.add_argument('--parcellation', required=True, help='Parcellation NIfTI')
    exemplar_parser.add_argument('--weights', help='Per-streamline weights (text file)')
    exemplar_parser.add_argument('--config', help='Exemplar configuration JSON')
    exemplar_parser.add_argument('--resolution', type=int,
                                 help='Number of points used during accumulation (default: 200)')
    exemplar_parser.add_argument('--step-size', type=float,
                                 help='Step size of the output exemplars in mm (default: 1.0)')
    exemplar_parser.add_argument('--threads', type=int, help='Number of worker threads (default: 1)')
    exemplar_parser.add_argument('--hdf5', help='Also write exemplars to this HDF5 file')
    exemplar_parser.add_argument('--output', '-o', required=True, help='Output exemplars file (TCK)')

    # Header command
    header_parser = subparsers.add_parser('header', help='Read an MRtrix image header')
    header_parser.add_argument('--input', '-i', required=True, help='MRtrix image (.mih/.mif)')
    header_parser.add_argument('--output', '-o', help='Output JSON (default: print)')

    args = parser.parse_args(argv)

    log_level = logging.DEBUG if args.debug else (logging.INFO if args.verbose else logging.WARNING)
    logger = get_logger(log_dir=args.log_dir)
    logger.setLevel(log_level)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'exemplars':
            generate_exemplars(args)
        elif args.command == 'header':
            show_header(args)
        else:
            parser.print_help()
            sys.exit(1)

        logger.info("Command completed successfully")

    except Exception as e:
        logger.error(f"Error: {e}", exc_info=args.debug)
        sys.exit(1)


def generate_exemplars(args):
    """Generate exemplars"""
    import numpy as np
    from .config import load_config
    from .connectome.construct import ConnectomeBuilder, load_parcellation
    from .connectome.exemplar_generator import ExemplarGenerator
    from .tractography.streamline_utils import StreamlineUtils

    logger = get_logger()
    logger.info("=" * 80)
    logger.info("EXEMPLAR GENERATION")
    logger.info("=" * 80)

    config = load_config(args.config).update(
        resolution=args.resolution,
        step_size=args.step_size,
        n_threads=args.threads,
        output_hdf5=args.hdf5
    )
    logger.info(f"Configuration: {config.to_dict()}")

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    streamlines = StreamlineUtils.load_streamlines(args.streamlines)

    weights = None
    if args.weights:
        weights = StreamlineUtils.load_weights(args.weights, n_streamlines=len(streamlines))

    parcellation, affine = load_parcellation(args.parcellation)
    builder = ConnectomeBuilder(parcellation, affine=affine)
    centroids = builder.compute_node_centroids()

    assigned, n_unassigned = builder.assign_streamlines(streamlines, weights)

    generator = ExemplarGenerator(
        centroids,
        resolution=config.resolution,
        step_size=config.step_size,
        converge_fraction=config.endpoint_converge_fraction,
        bisection_iterations=config.bisection_iterations
    )
    generator.add_all(assigned, n_threads=config.n_threads)
    generator.finalize_all(n_threads=config.n_threads)

    generator.save_tck(str(output_path))
    if config.output_hdf5:
        generator.save_hdf5(config.output_hdf5)

    edges_path = output_path.parent / f"{output_path.stem}_edges.csv"
    np.savetxt(edges_path, np.array(generator.edge_table(), dtype=np.float64), delimiter=',',
               fmt=['%d', '%d', '%.6f', '%d'], header="node_1,node_2,weight,n_points", comments='')
    logger.info(f"Saved edge table to {edges_path}")

    connectome_path = output_path.parent / f"{output_path.stem}_connectome.csv"
    np.savetxt(connectome_path, builder.build_connectome(assigned), delimiter=',', fmt='%.6f')
    logger.info(f"Saved connectome to {connectome_path}")

    stats = generator.get_statistics()
    stats['n_streamlines'] = len(streamlines)
    stats['n_unassigned'] = n_unassigned

    info_path = output_path.parent / f"{output_path.stem}_info.json"
    with open(info_path, 'w') as f:
        json.dump({'statistics': stats, 'config': config.to_dict()}, f, indent=2)
    logger.info(f"Saved exemplar info to {info_path}")

    log_decision(
        decision_id=f"exemplars_{output_path.stem}",
        component="connectome.exemplar_generator",
        decision=f"Generated {stats['n_edges']} exemplars from {len(assigned)} assigned streamlines",
        parameters={**config.to_dict(), 'n_unassigned': n_unassigned},
        output_file=str(Path(args.log_dir) / "decision_log.md")
    )

    logger.info("\nExemplar Summary:")
    logger.info(f"  Number of nodes: {stats['n_nodes']}")
    logger.info(f"  Number of edges: {stats['n_edges']}")
    logger.info(f"  Edges with streamlines: {stats['n_connected_edges']}")
    logger.info(f"  Total weight: {stats['total_weight']:.2f}")
    logger.info(f"  Mean exemplar length: {stats['mean_length']:.1f}mm")


def show_header(args):
    """Print or save a parsed MRtrix header"""
    from .image.mrtrix_header import load_mrtrix_header

    logger = get_logger()
    header = load_mrtrix_header(args.input)
    text = json.dumps(header.to_dict(), indent=2)

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, 'w') as f:
            f.write(text)
        logger.info(f"Saved header to {args.output}")
    else:
        print(text)


if __name__ == '__main__':
    main()
