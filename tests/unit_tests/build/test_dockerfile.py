from deployment.build.dockerfile import render_dockerfile


def test_render_dockerfile__layout():
    dockerfile = render_dockerfile()
    lines = dockerfile.splitlines()

    assert lines[0] == "FROM amazonlinux:2023"
    assert "WORKDIR /var/www/html" in lines
    assert "COPY html/ /var/www/html/" in lines
    assert "RUN chmod -R 777 /var/www/html" in lines
    assert "RUN chmod -R 777 /var/www/html/storage" in lines
    assert "EXPOSE 80 3306" in lines
    assert lines[-1] == 'CMD ["/usr/sbin/httpd", "-D", "FOREGROUND"]'


def test_render_dockerfile__installs_php_stack():
    dockerfile = render_dockerfile()
    for package in ("httpd", "php-mysqlnd", "php-mbstring", "mariadb105"):
        assert package in dockerfile
    assert "AllowOverride All" in dockerfile


def test_render_dockerfile__carries_no_secrets():
    dockerfile = render_dockerfile()
    assert "ARG" not in dockerfile
    assert "PERSONAL_ACCESS_TOKEN" not in dockerfile
    assert "git clone" not in dockerfile


def test_render_dockerfile__custom_values():
    dockerfile = render_dockerfile(base_image="php:8.2-apache", packages=["httpd"], ports=[8080],
                                   command=["apache2-foreground"])
    assert dockerfile.startswith("FROM php:8.2-apache\n")
    assert "EXPOSE 8080" in dockerfile
    assert 'CMD ["apache2-foreground"]' in dockerfile
