# -*- coding: utf-8 -*-
import os
import stat

import pytest

from conftest import make_target_graph, write_project
from xcodelink import pbxstore
from xcodelink.errors import ParseError
from xcodelink.graph import NodeKind
from xcodelink.pbxstore import plutil_to_json

SAMPLE = r"""// !$*UTF8*$!
{
	archiveVersion = 1;
	classes = {
	};
	objectVersion = 56;
	objects = {

/* Begin PBXBuildFile section */
		1D60589B0D05DD56006BFB54 /* main.m in Sources */ = {isa = PBXBuildFile; fileRef = 29B97316FDCFA39411CA2CEA /* main.m */; };
		8A1B2C3D4E5F60718293A4B5 /* Subscription.xcframework in Frameworks */ = {isa = PBXBuildFile; fileRef = 8A1B2C3D4E5F60718293A4B6 /* Subscription.xcframework */; };
/* End PBXBuildFile section */

/* Begin PBXFileReference section */
		1D6058910D05DD3D006BFB54 /* Volo.app */ = {isa = PBXFileReference; explicitFileType = wrapper.application; includeInIndex = 0; path = Volo.app; sourceTree = BUILT_PRODUCTS_DIR; };
		29B97316FDCFA39411CA2CEA /* main.m */ = {isa = PBXFileReference; fileEncoding = 4; lastKnownFileType = sourcecode.c.objc; path = main.m; sourceTree = "<group>"; };
		8A1B2C3D4E5F60718293A4B6 /* Subscription.xcframework */ = {isa = PBXFileReference; lastKnownFileType = wrapper.xcframework; name = Subscription.xcframework; path = "Carthage/Build/Subscription.xcframework"; sourceTree = "<group>"; };
/* End PBXFileReference section */

/* Begin PBXFrameworksBuildPhase section */
		1D60588F0D05DD3D006BFB54 /* Frameworks */ = {
			isa = PBXFrameworksBuildPhase;
			buildActionMask = 2147483647;
			files = (
				8A1B2C3D4E5F60718293A4B5 /* Subscription.xcframework in Frameworks */,
			);
			runOnlyForDeploymentPostprocessing = 0;
		};
/* End PBXFrameworksBuildPhase section */

/* Begin PBXGroup section */
		19C28FACFE9D520D11CA2CBB /* Products */ = {
			isa = PBXGroup;
			children = (
				1D6058910D05DD3D006BFB54 /* Volo.app */,
			);
			name = Products;
			sourceTree = "<group>";
		};
		29B97314FDCFA39411CA2CEA /* CustomTemplate */ = {
			isa = PBXGroup;
			children = (
				29B97316FDCFA39411CA2CEA /* main.m */,
				8A1B2C3D4E5F60718293A4B7 /* Frameworks */,
				19C28FACFE9D520D11CA2CBB /* Products */,
			);
			name = CustomTemplate;
			sourceTree = "<group>";
		};
		8A1B2C3D4E5F60718293A4B7 /* Frameworks */ = {
			isa = PBXGroup;
			children = (
				8A1B2C3D4E5F60718293A4B6 /* Subscription.xcframework */,
			);
			name = Frameworks;
			sourceTree = "<group>";
		};
/* End PBXGroup section */

/* Begin PBXNativeTarget section */
		1D6058900D05DD3D006BFB54 /* Volo */ = {
			isa = PBXNativeTarget;
			buildConfigurationList = 1D6058960D05DD3E006BFB54 /* Build configuration list for PBXNativeTarget "Volo" */;
			buildPhases = (
				1D60588D0D05DD3D006BFB54 /* Sources */,
				1D60588F0D05DD3D006BFB54 /* Frameworks */,
			);
			buildRules = (
			);
			dependencies = (
			);
			name = Volo;
			productName = Volo;
			productReference = 1D6058910D05DD3D006BFB54 /* Volo.app */;
			productType = "com.apple.product-type.application";
		};
/* End PBXNativeTarget section */

/* Begin PBXProject section */
		29B97313FDCFA39411CA2CEA /* Project object */ = {
			isa = PBXProject;
			attributes = {
				LastUpgradeCheck = 1500;
				ORGANIZATIONNAME = "Delivery Hero";
			};
			buildConfigurationList = C01FCF4E08A954540054247B /* Build configuration list for PBXProject "Volo" */;
			compatibilityVersion = "Xcode 14.0";
			mainGroup = 29B97314FDCFA39411CA2CEA /* CustomTemplate */;
			productRefGroup = 19C28FACFE9D520D11CA2CBB /* Products */;
			projectDirPath = "";
			projectRoot = "";
			targets = (
				1D6058900D05DD3D006BFB54 /* Volo */,
			);
		};
/* End PBXProject section */

/* Begin PBXSourcesBuildPhase section */
		1D60588D0D05DD3D006BFB54 /* Sources */ = {
			isa = PBXSourcesBuildPhase;
			buildActionMask = 2147483647;
			files = (
				1D60589B0D05DD56006BFB54 /* main.m in Sources */,
			);
			runOnlyForDeploymentPostprocessing = 0;
		};
/* End PBXSourcesBuildPhase section */

/* Begin XCBuildConfiguration section */
		1D6058940D05DD3E006BFB54 /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				INFOPLIST_FILE = "Volo/Info.plist";
				OTHER_LDFLAGS = (
					"-ObjC",
					"$(inherited)",
				);
				PRODUCT_BUNDLE_IDENTIFIER = com.example.volo;
				PRODUCT_NAME = "$(TARGET_NAME)";
			};
			name = Debug;
		};
		C01FCF4F08A954540054247B /* Debug */ = {
			isa = XCBuildConfiguration;
			buildSettings = {
				GCC_C_LANGUAGE_STANDARD = gnu99;
				SDKROOT = iphoneos;
			};
			name = Debug;
		};
/* End XCBuildConfiguration section */

/* Begin XCConfigurationList section */
		1D6058960D05DD3E006BFB54 /* Build configuration list for PBXNativeTarget "Volo" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				1D6058940D05DD3E006BFB54 /* Debug */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Debug;
		};
		C01FCF4E08A954540054247B /* Build configuration list for PBXProject "Volo" */ = {
			isa = XCConfigurationList;
			buildConfigurations = (
				C01FCF4F08A954540054247B /* Debug */,
			);
			defaultConfigurationIsVisible = 0;
			defaultConfigurationName = Debug;
		};
/* End XCConfigurationList section */
	};
	rootObject = 29B97313FDCFA39411CA2CEA /* Project object */;
}
"""


@pytest.fixture
def sample_project(tmp_path):
    project = tmp_path / "Volo.xcodeproj"
    project.mkdir()
    (project / "project.pbxproj").write_text(SAMPLE, encoding="utf-8")
    return project


def test_parse_openstep_reads_xcode_file():
    data = pbxstore.parse_openstep(SAMPLE)
    assert data["archiveVersion"] == "1"
    assert data["rootObject"] == "29B97313FDCFA39411CA2CEA"
    objects = data["objects"]
    assert len(objects) == 16
    assert objects["29B97316FDCFA39411CA2CEA"]["sourceTree"] == "<group>"
    assert objects["29B97313FDCFA39411CA2CEA"]["attributes"]["ORGANIZATIONNAME"] == "Delivery Hero"
    assert objects["1D6058940D05DD3E006BFB54"]["buildSettings"]["OTHER_LDFLAGS"] == ["-ObjC", "$(inherited)"]
    assert objects["1D60588F0D05DD3D006BFB54"]["files"] == ["8A1B2C3D4E5F60718293A4B5"]


def test_parse_openstep_handles_escapes_and_data():
    data = pbxstore.parse_openstep(r'{ a = "line\nnext \"q\""; b = <0fA1 ff>; c = ( ); }')
    assert data["a"] == 'line\nnext "q"'
    assert data["b"] == bytes([0x0F, 0xA1, 0xFF])
    assert data["c"] == []


@pytest.mark.parametrize("text", [
    "",
    "{ a = b; ",
    "{ a = (b c); }",
    "{ a = \"unterminated; }",
    "( a, b )",
    "{ a = b; } trailing",
])
def test_parse_openstep_rejects_malformed_input(text):
    with pytest.raises(ValueError):
        pbxstore.parse_openstep(text)


@pytest.mark.parametrize("value,expected", [
    ("Volo.app", "Volo.app"),
    ("BUILT_PRODUCTS_DIR", "BUILT_PRODUCTS_DIR"),
    ("../Carthage/Build/RxSwift.xcframework", "../Carthage/Build/RxSwift.xcframework"),
    ("<group>", '"<group>"'),
    ("", '""'),
    ("Xcode 14.0", '"Xcode 14.0"'),
    ("com.apple.product-type.application", '"com.apple.product-type.application"'),
    ('say "hi"', '"say \\"hi\\""'),
])
def test_quote(value, expected):
    assert pbxstore.quote(value) == expected


def test_load_builds_graph(sample_project):
    graph = pbxstore.load(sample_project)
    assert graph.project_id == "29B97313FDCFA39411CA2CEA"
    assert graph.kind_of("8A1B2C3D4E5F60718293A4B6") == NodeKind.FILE_REFERENCE
    assert graph.application_target() == "1D6058900D05DD3D006BFB54"
    assert graph.dangling_references() == []


def test_save_then_load_preserves_every_object(sample_project):
    graph = pbxstore.load(sample_project)
    pbxstore.save(graph, sample_project)
    again = pbxstore.load(sample_project)
    assert again.objects == graph.objects
    assert again.root_object == graph.root_object
    assert again.object_version == "56"


def test_save_writes_xcode_layout(sample_project):
    pbxstore.save(pbxstore.load(sample_project), sample_project)
    text = (sample_project / "project.pbxproj").read_text(encoding="utf-8")
    assert text.startswith("// !$*UTF8*$!\n{\n")
    assert "/* Begin PBXBuildFile section */" in text
    assert ("\t\t8A1B2C3D4E5F60718293A4B5 /* Subscription.xcframework in Frameworks */ = "
            "{isa = PBXBuildFile; fileRef = 8A1B2C3D4E5F60718293A4B6 /* Subscription.xcframework */; };") in text
    assert "rootObject = 29B97313FDCFA39411CA2CEA /* Project object */;" in text
    assert 'sourceTree = "<group>";' in text


def test_save_replaces_file_and_keeps_mode(tmp_path):
    project = tmp_path / "Volo.xcodeproj"
    path = write_project(project, make_target_graph())
    os.chmod(path, 0o640)
    pbxstore.save(make_target_graph(packaged=False), project)
    assert stat.S_IMODE(path.stat().st_mode) == 0o640
    assert os.listdir(project) == ["project.pbxproj"]
    assert pbxstore.load(project).objects == make_target_graph(packaged=False).objects


def test_load_missing_project_raises_parse_error(tmp_path):
    with pytest.raises(ParseError):
        pbxstore.load(tmp_path / "Missing.xcodeproj")


def test_load_garbage_raises_parse_error(tmp_path):
    project = tmp_path / "Broken.xcodeproj"
    project.mkdir()
    (project / "project.pbxproj").write_text("{ objects = (", encoding="utf-8")
    with pytest.raises(ParseError):
        pbxstore.load(project)


def test_load_without_root_object_raises_parse_error(tmp_path):
    project = tmp_path / "Broken.xcodeproj"
    project.mkdir()
    (project / "project.pbxproj").write_text("{ objects = { }; rootObject = X; }", encoding="utf-8")
    with pytest.raises(ParseError):
        pbxstore.load(project)


def test_plutil_is_skipped_when_missing(monkeypatch, tmp_path):
    monkeypatch.setattr(pbxstore.shutil, "which", lambda name: None)
    assert plutil_to_json(tmp_path / "project.pbxproj") is None
