# -*- coding: utf-8 -*-
from pathlib import Path

import pytest

from xcodelink import log, pbxstore
from xcodelink.config import Settings
from xcodelink.graph import ObjectGraph

# progetto target (app)
PROJECT = "AA0000000000000000000001"
MAIN_GROUP = "AA0000000000000000000002"
FRAMEWORKS_GROUP = "AA0000000000000000000003"
PRODUCTS_GROUP = "AA0000000000000000000004"
APP_TARGET = "AA0000000000000000000005"
FRAMEWORKS_PHASE = "AA0000000000000000000006"
SOURCES_PHASE = "AA0000000000000000000007"
XCF_REF = "AA0000000000000000000008"
XCF_BUILD_FILE = "AA0000000000000000000009"
APP_PRODUCT = "AA000000000000000000000A"
CONFIG_LIST = "AA000000000000000000000B"
CONFIG_DEBUG = "AA000000000000000000000C"

# progetto sorgente (framework)
SRC_PROJECT = "BB0000000000000000000001"
SRC_MAIN_GROUP = "BB0000000000000000000002"
SRC_FRAMEWORKS_GROUP = "BB0000000000000000000003"
SRC_TARGET = "BB0000000000000000000004"
SRC_FRAMEWORKS_PHASE = "BB0000000000000000000005"
RXSWIFT_REF = "BB0000000000000000000006"
RXSWIFT_BUILD_FILE = "BB0000000000000000000007"
APOLLO_API_REF = "BB0000000000000000000008"
APOLLO_API_BUILD_FILE = "BB0000000000000000000009"
SRC_CONFIG_LIST = "BB000000000000000000000A"
SRC_CONFIG_DEBUG = "BB000000000000000000000B"

SUBSCRIPTION_XCF = "Subscription.xcframework"
SUBSCRIPTION_XCF_PATH = "Carthage/Build/Subscription.xcframework"
NESTED_PATH = "../pd-mob-subscription-ios/Subscription/Subscription.xcodeproj"


def _config_objects(list_id: str, debug_id: str):
    return {
        list_id: {
            "isa": "XCConfigurationList",
            "buildConfigurations": [debug_id],
            "defaultConfigurationIsVisible": "0",
            "defaultConfigurationName": "Debug",
        },
        debug_id: {
            "isa": "XCBuildConfiguration",
            "buildSettings": {"PRODUCT_NAME": "$(TARGET_NAME)", "SWIFT_VERSION": "5.0"},
            "name": "Debug",
        },
    }


def make_target_graph(packaged: bool = True) -> ObjectGraph:
    """App 'Volo' che linka Subscription.xcframework nella fase Frameworks."""
    objects = {
        PROJECT: {
            "isa": "PBXProject",
            "buildConfigurationList": CONFIG_LIST,
            "compatibilityVersion": "Xcode 14.0",
            "mainGroup": MAIN_GROUP,
            "productRefGroup": PRODUCTS_GROUP,
            "projectDirPath": "",
            "projectRoot": "",
            "targets": [APP_TARGET],
        },
        MAIN_GROUP: {"isa": "PBXGroup", "children": [FRAMEWORKS_GROUP, PRODUCTS_GROUP], "sourceTree": "<group>"},
        FRAMEWORKS_GROUP: {
            "isa": "PBXGroup",
            "children": [XCF_REF] if packaged else [],
            "name": "Frameworks",
            "sourceTree": "<group>",
        },
        PRODUCTS_GROUP: {"isa": "PBXGroup", "children": [APP_PRODUCT], "name": "Products", "sourceTree": "<group>"},
        APP_PRODUCT: {
            "isa": "PBXFileReference",
            "explicitFileType": "wrapper.application",
            "includeInIndex": "0",
            "path": "Volo.app",
            "sourceTree": "BUILT_PRODUCTS_DIR",
        },
        APP_TARGET: {
            "isa": "PBXNativeTarget",
            "buildConfigurationList": CONFIG_LIST,
            "buildPhases": [SOURCES_PHASE, FRAMEWORKS_PHASE],
            "buildRules": [],
            "dependencies": [],
            "name": "Volo",
            "productName": "Volo",
            "productReference": APP_PRODUCT,
            "productType": "com.apple.product-type.application",
        },
        SOURCES_PHASE: {
            "isa": "PBXSourcesBuildPhase",
            "buildActionMask": "2147483647",
            "files": [],
            "runOnlyForDeploymentPostprocessing": "0",
        },
        FRAMEWORKS_PHASE: {
            "isa": "PBXFrameworksBuildPhase",
            "buildActionMask": "2147483647",
            "files": [XCF_BUILD_FILE] if packaged else [],
            "runOnlyForDeploymentPostprocessing": "0",
        },
    }
    objects.update(_config_objects(CONFIG_LIST, CONFIG_DEBUG))
    if packaged:
        objects[XCF_REF] = {
            "isa": "PBXFileReference",
            "lastKnownFileType": "wrapper.xcframework",
            "name": SUBSCRIPTION_XCF,
            "path": SUBSCRIPTION_XCF_PATH,
            "sourceTree": "<group>",
        }
        objects[XCF_BUILD_FILE] = {"isa": "PBXBuildFile", "fileRef": XCF_REF}
    return ObjectGraph(objects, root_object=PROJECT)


def make_source_graph() -> ObjectGraph:
    """Framework 'Subscription' che dipende da RxSwift e ApolloAPI via Carthage."""
    objects = {
        SRC_PROJECT: {
            "isa": "PBXProject",
            "buildConfigurationList": SRC_CONFIG_LIST,
            "mainGroup": SRC_MAIN_GROUP,
            "projectDirPath": "",
            "projectRoot": "",
            "targets": [SRC_TARGET],
        },
        SRC_MAIN_GROUP: {"isa": "PBXGroup", "children": [SRC_FRAMEWORKS_GROUP], "sourceTree": "<group>"},
        SRC_FRAMEWORKS_GROUP: {
            "isa": "PBXGroup",
            "children": [RXSWIFT_REF, APOLLO_API_REF],
            "name": "Frameworks",
            "sourceTree": "<group>",
        },
        SRC_TARGET: {
            "isa": "PBXNativeTarget",
            "buildConfigurationList": SRC_CONFIG_LIST,
            "buildPhases": [SRC_FRAMEWORKS_PHASE],
            "dependencies": [],
            "name": "Subscription",
            "productType": "com.apple.product-type.framework",
        },
        SRC_FRAMEWORKS_PHASE: {
            "isa": "PBXFrameworksBuildPhase",
            "files": [RXSWIFT_BUILD_FILE, APOLLO_API_BUILD_FILE],
        },
        RXSWIFT_REF: {
            "isa": "PBXFileReference",
            "lastKnownFileType": "wrapper.xcframework",
            "name": "RxSwift.xcframework",
            "path": "../Carthage/Build/RxSwift.xcframework",
            "sourceTree": "<group>",
        },
        RXSWIFT_BUILD_FILE: {"isa": "PBXBuildFile", "fileRef": RXSWIFT_REF},
        APOLLO_API_REF: {
            "isa": "PBXFileReference",
            "lastKnownFileType": "wrapper.xcframework",
            "path": "../Carthage/Checkouts/apollo-ios-xcframework/xcframeworks/ApolloAPI.xcframework",
            "sourceTree": "<group>",
        },
        APOLLO_API_BUILD_FILE: {"isa": "PBXBuildFile", "fileRef": APOLLO_API_REF},
    }
    objects.update(_config_objects(SRC_CONFIG_LIST, SRC_CONFIG_DEBUG))
    return ObjectGraph(objects, root_object=SRC_PROJECT)


def add_nested_wiring(graph: ObjectGraph, nested_ref: str) -> dict:
    """Collega il progetto annidato come farebbe Xcode: proxy, dipendenza,
    reference proxy linkato e voce in projectReferences."""
    ids = {}
    ids["link_proxy"] = graph.add({
        "isa": "PBXContainerItemProxy",
        "containerPortal": nested_ref,
        "proxyType": "2",
        "remoteGlobalIDString": "CC0000000000000000000001",
        "remoteInfo": "Subscription",
    })
    ids["target_proxy"] = graph.add({
        "isa": "PBXContainerItemProxy",
        "containerPortal": nested_ref,
        "proxyType": "1",
        "remoteGlobalIDString": "CC0000000000000000000002",
        "remoteInfo": "Subscription",
    })
    ids["dependency"] = graph.add({
        "isa": "PBXTargetDependency",
        "name": "Subscription",
        "targetProxy": ids["target_proxy"],
    })
    ids["reference_proxy"] = graph.add({
        "isa": "PBXReferenceProxy",
        "fileType": "wrapper.framework",
        "path": "Subscription.framework",
        "remoteRef": ids["link_proxy"],
        "sourceTree": "BUILT_PRODUCTS_DIR",
    })
    ids["reference_build_file"] = graph.add({"isa": "PBXBuildFile", "fileRef": ids["reference_proxy"]})
    ids["product_group"] = graph.add({
        "isa": "PBXGroup",
        "children": [ids["reference_proxy"]],
        "name": "Products",
        "sourceTree": "<group>",
    })
    graph.get(APP_TARGET)["dependencies"].append(ids["dependency"])
    graph.get(FRAMEWORKS_PHASE)["files"].append(ids["reference_build_file"])
    graph.project()["projectReferences"] = [
        {"ProductGroup": ids["product_group"], "ProjectRef": nested_ref},
    ]
    return ids


def write_project(project_dir: Path, graph: ObjectGraph) -> Path:
    project_dir.mkdir(parents=True, exist_ok=True)
    return pbxstore.save(graph, project_dir)


@pytest.fixture(autouse=True)
def no_plutil(monkeypatch):
    """Sempre il parser interno, anche su macOS."""
    monkeypatch.setattr(pbxstore, "plutil_to_json", lambda path: None)


@pytest.fixture(autouse=True)
def reset_log():
    yield
    log.close()
    log.VERBOSE = False


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(data_dir=tmp_path / "home", mappings_file=tmp_path / "home" / "mappings.json")


@pytest.fixture
def repos(tmp_path):
    """Cartella con i due repository affiancati: (base, sorgente, target)."""
    source = tmp_path / "pd-mob-subscription-ios" / "Subscription" / "Subscription.xcodeproj"
    target = tmp_path / "pd-mob-b2c-ios" / "Volo.xcodeproj"
    write_project(source, make_source_graph())
    write_project(target, make_target_graph())
    return tmp_path, source, target
