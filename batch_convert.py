"""
Batch ITP Converter
Converts JSON scene descriptions into .itpmesh3 / .itpskel / .itpblend files
"""
import logging
import sys
from pathlib import Path

from itpmesh.converter import ExportOptions, convert_scene
from itpmesh.itp_writer import JsonMeshWriter
from itpmesh.scene_source import SceneLoadError


class ItpBatchConverter:
    """Converts one scene file or every scene file under a folder"""

    # Default paths
    DEFAULT_INPUT = "input"
    DEFAULT_OUTPUT = "output"
    SCENE_PATTERN = "*.json"

    def __init__(self, input_path=None, output_folder=None, options=None):
        self.input_path = Path(input_path or self.DEFAULT_INPUT)
        self.output_folder = Path(output_folder or self.DEFAULT_OUTPUT)
        self.options = options or ExportOptions()
        self.writer = JsonMeshWriter(self.output_folder)

    def find_scenes(self):
        if self.input_path.is_file():
            return [self.input_path]
        return sorted(self.input_path.rglob(self.SCENE_PATTERN))

    def convert(self, scene_path):
        """Convert a single scene; load failures are raised to the caller"""
        print(f"Processing: {scene_path.name}")
        written = convert_scene(scene_path, self.writer, self.options)
        for path in written:
            print(f"  [OK] Saved: {Path(path).name}")
        return written

    def batch_process(self):
        scene_files = self.find_scenes()

        if not scene_files:
            print(f"No scene files found in {self.input_path}")
            return 0

        print(f"Found {len(scene_files)} scene file(s)")
        print(f"Skin export: {'on' if self.options.export_skin else 'off'}, "
              f"blendshape export: {'on' if self.options.export_blendshapes else 'off'}")
        print()

        file_count = 0
        for idx, scene_file in enumerate(scene_files, 1):
            print(f"[{idx}/{len(scene_files)}] ", end='')
            file_count += len(self.convert(scene_file))

        print(f"\n{'='*60}")
        print(f"Completed: {len(scene_files)} scene(s), {file_count} file(s) written")
        print(f"{'='*60}")
        return file_count


def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description='Convert scene descriptions to ITP mesh files')
    parser.add_argument('input_path', nargs='?', default=None,
                        help=f'Scene file or folder of scene files (default: {ItpBatchConverter.DEFAULT_INPUT})')
    parser.add_argument('output_folder', nargs='?', default=None,
                        help=f'Folder to write ITP files to (default: {ItpBatchConverter.DEFAULT_OUTPUT})')
    parser.add_argument('--skin', '-s', action='store_true',
                        help='Export skin weights and the skeleton')
    parser.add_argument('--blendshapes', '-b', action='store_true',
                        help='Export blendshape targets')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Show per-bone and per-blendshape details')

    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='  %(levelname)s: %(message)s')

    options = ExportOptions(export_skin=args.skin, export_blendshapes=args.blendshapes)
    converter = ItpBatchConverter(args.input_path, args.output_folder, options)
    try:
        converter.batch_process()
    except (FileNotFoundError, SceneLoadError) as e:
        print(f"  [ERROR] {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
