import pytest

from craftlaunch.command import LaunchIdentity, build_classpath, build_command, classpath_separator
from craftlaunch.descriptor import VersionDescriptor
from craftlaunch.errors import LaunchError
from craftlaunch.java import runtime_dir

from conftest import LINUX, MACOS_ARM, WINDOWS

IDENTITY = LaunchIdentity('Alice', 'uuid-1234', 'token-abcd')


def modern_descriptor(**extra):
    data = {
        'id': '1.20.4',
        'type': 'release',
        'mainClass': 'net.minecraft.client.main.Main',
        'assets': '12',
        'libraries': [
            {'name': 'a:one:1', 'downloads': {'artifact': {'url': 'http://h/1', 'sha1': 'x', 'path': 'a/one/1/one-1.jar'}}},
            {'name': 'a:two:1', 'downloads': {'artifact': {'url': 'http://h/2', 'sha1': 'x', 'path': 'a/two/1/two-1.jar'}}},
            {'name': 'a:one-again:1', 'downloads': {'artifact': {'url': 'http://h/1', 'sha1': 'x', 'path': 'a/one/1/one-1.jar'}}},
            {'name': 'a:mac-only:1', 'downloads': {'artifact': {'url': 'http://h/3', 'sha1': 'x', 'path': 'a/mac/1/mac-1.jar'}},
             'rules': [{'action': 'allow', 'os': {'name': 'osx'}}]},
        ],
        'arguments': {'game': [
            '--username', '${auth_player_name}',
            '--title', '${auth_player_name} playing ${version_name}',
            '--quickPlayPath', '${quickPlayPath}',
            {'rules': [{'action': 'allow', 'os': {'name': 'windows'}}], 'value': ['--windows', 'yes']},
            {'rules': [{'action': 'allow', 'features': {'is_demo_user': True}}], 'value': '--demo'},
        ]},
    }
    data.update(extra)
    return VersionDescriptor(data)


def test_classpath_separator():
    assert classpath_separator(WINDOWS) == ';'
    assert classpath_separator(LINUX) == ':'


def test_classpath_order_dedup_and_client_last(tmp_path):
    entries = build_classpath(modern_descriptor(), tmp_path, '1.20.4', LINUX)
    libs = tmp_path / 'libraries'
    assert entries == [
        str(libs / 'a' / 'one' / '1' / 'one-1.jar'),
        str(libs / 'a' / 'two' / '1' / 'two-1.jar'),
        str(tmp_path / 'versions' / '1.20.4' / '1.20.4.jar'),
    ]


def test_client_jar_follows_jar_key(tmp_path):
    entries = build_classpath(modern_descriptor(jar='1.20.4'), tmp_path, 'forge-1.20.4', LINUX)
    assert entries[-1] == str(tmp_path / 'versions' / '1.20.4' / '1.20.4.jar')


def test_command_order_on_linux(tmp_path):
    command = build_command(modern_descriptor(), tmp_path, IDENTITY, version='1.20.4', platform=LINUX,
                            jvm_args=['-Xmx2G'], features={})
    cp_index = command.index('-cp')

    assert command[:3] == ['java', '-Xmx2G', f"-Djava.library.path={tmp_path / 'versions' / '1.20.4' / 'natives'}"]
    assert cp_index == 3
    assert command[cp_index + 1].split(':')[-1] == str(tmp_path / 'versions' / '1.20.4' / '1.20.4.jar')
    assert command[cp_index + 2] == 'net.minecraft.client.main.Main'
    assert command[cp_index + 3:] == [
        '--username', 'Alice',
        '--title', 'Alice playing 1.20.4',
        '--quickPlayPath', '${quickPlayPath}',
    ]


def test_macos_flag_and_authlib_agent(tmp_path):
    injector = tmp_path / 'authlib-injector.jar'
    command = build_command(modern_descriptor(), tmp_path, IDENTITY, platform=MACOS_ARM,
                            jvm_args=['-Xmx1G'], authlib_injector=injector)
    assert command[1:4] == ['-XstartOnFirstThread', '-Xmx1G', f"-javaagent:{injector}=ely.by"]
    assert command[4].startswith('-Djava.library.path=')


def test_conditional_arguments_follow_platform(tmp_path):
    command = build_command(modern_descriptor(), tmp_path, IDENTITY, platform=WINDOWS, features={})
    assert command[-2:] == ['--windows', 'yes']
    assert ';' in command[command.index('-cp') + 1]


def test_features_enable_demo_argument(tmp_path):
    command = build_command(modern_descriptor(), tmp_path, IDENTITY, platform=LINUX,
                            features={'is_demo_user': True})
    assert command[-1] == '--demo'


def test_legacy_arguments_are_split_and_templated(tmp_path):
    descriptor = VersionDescriptor({
        'id': '1.7.10',
        'mainClass': 'net.minecraft.client.main.Main',
        'minecraftArguments': '--username ${auth_player_name} --session ${auth_access_token}  '
                              '--assetIndex ${assets_index_name} --userType ${user_type}',
    })
    command = build_command(descriptor, tmp_path, IDENTITY, platform=LINUX)
    assert command[-8:] == ['--username', 'Alice', '--session', 'token-abcd',
                            '--assetIndex', '1.7.10', '--userType', 'msa']


def test_java_selection(tmp_path):
    descriptor = modern_descriptor(javaVersion={'component': 'java-runtime-gamma', 'majorVersion': 17})
    assert build_command(descriptor, tmp_path, IDENTITY, platform=LINUX)[0] == 'java'

    java = runtime_dir(tmp_path, 'java-runtime-gamma', LINUX) / 'bin' / 'java'
    java.parent.mkdir(parents=True)
    java.write_text('#!/bin/sh\n')
    java.chmod(0o755)
    assert build_command(descriptor, tmp_path, IDENTITY, platform=LINUX)[0] == str(java)
    assert build_command(descriptor, tmp_path, IDENTITY, platform=LINUX,
                         configured_java='/opt/jdk/bin/java')[0] == '/opt/jdk/bin/java'
    assert build_command(descriptor, tmp_path, IDENTITY, platform=LINUX, configured_java='/opt/jdk/bin/java',
                         java_path='/usr/bin/java')[0] == '/usr/bin/java'


def test_caller_variables_override(tmp_path):
    command = build_command(modern_descriptor(), tmp_path, IDENTITY, platform=LINUX,
                            variables={'quickPlayPath': 'qp.json', 'auth_player_name': 'Bob'})
    assert command[command.index('--quickPlayPath') + 1] == 'qp.json'
    assert command[command.index('--username') + 1] == 'Bob'


def test_missing_main_class(tmp_path):
    with pytest.raises(LaunchError):
        build_command(VersionDescriptor({'id': 'broken'}), tmp_path, IDENTITY, platform=LINUX)


def test_identity_repr_hides_token():
    assert 'token-abcd' not in repr(IDENTITY)


def test_substituted_values_are_not_expanded_again(tmp_path):
    identity = LaunchIdentity('${auth_access_token}', 'uuid-1234', 'SECRET')
    command = build_command(modern_descriptor(), tmp_path, identity, java_path='java', platform=LINUX)

    assert command[command.index('--username') + 1] == '${auth_access_token}'
    assert 'SECRET' not in command[command.index('--username') + 1:command.index('--title') + 2]
