"""Fixed source files written into the preview scaffold."""

# Entry point of the scaffold project. It renders whatever `previews()` in
# generated_preview.dart returns. Asset keys from the parent project are
# remapped relative to the scaffold directory.
WIDGET_PREVIEW_SCAFFOLD = """\
import 'package:flutter/material.dart';
import 'package:flutter/services.dart';
import 'package:widget_preview/src/environment/widget_preview.dart';

// ignore: uri_does_not_exist, will be generated.
import 'generated_preview.dart';

class PreviewAssetBundle extends PlatformAssetBundle {
  static const _kPackagesPrefix = 'packages';

  @override
  Future<ByteData> load(String key) {
    if (key == 'AssetManifest.bin' ||
        key == 'AssetManifest.json' ||
        key == 'FontManifest.json' ||
        key.startsWith(_kPackagesPrefix)) {
      return super.load(key);
    }
    return super.load('../../$key');
  }

  @override
  Future<ImmutableBuffer> loadBuffer(String key) async {
    return await ImmutableBuffer.fromAsset(
      key.startsWith(_kPackagesPrefix) ? key : '../../$key',
    );
  }
}

void main() {
  runApp(const WidgetPreviewScaffold());
}

class WidgetPreviewScaffold extends StatelessWidget {
  const WidgetPreviewScaffold({super.key});

  @override
  Widget build(BuildContext context) {
    // ignore: undefined_method, will be present in generated_preview.dart.
    final previewList = previews();
    Widget previewView;
    if (previewList.isEmpty) {
      previewView = const Center(
        child: Text(
          'No previews available',
          style: TextStyle(color: Colors.white),
        ),
      );
    } else {
      previewView = LayoutBuilder(
        builder: (context, constraints) {
          return WidgetPreviewerWindowConstraints(
            constraints: constraints,
            child: SingleChildScrollView(
              child: Column(
                mainAxisAlignment: MainAxisAlignment.center,
                crossAxisAlignment: CrossAxisAlignment.center,
                children: [
                  for (final preview in previewList) preview,
                ],
              ),
            ),
          );
        },
      );
    }
    return MaterialApp(
      debugShowCheckedModeBanner: false,
      home: Material(
        color: Colors.transparent,
        child: DefaultAssetBundle(
          bundle: PreviewAssetBundle(),
          child: previewView,
        ),
      ),
    );
  }
}
"""
